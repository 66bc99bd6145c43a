"""
Snapverify package entry point.

Allows running snapverify as a module:
    python -m snapverify
"""

from snapverify.cli import main

if __name__ == "__main__":
    main()
