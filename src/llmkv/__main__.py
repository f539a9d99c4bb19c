"""Entry point for running llmkv as a module.

This allows running: python -m llmkv
"""

from .cli import main

if __name__ == "__main__":
    main()
