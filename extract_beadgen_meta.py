#!/usr/bin/env python3
import sys
from pathlib import Path

from PIL import UnidentifiedImageError

from bead.file_utils import read_bead_metadata


def extract_png_metadata(filepath: Path) -> bool:
    """
    Prints the beadgen metadata of a PNG written by beadgen.py.

    Returns:
        bool: True if any beadgen metadata was found.
    """
    print(f"--- beadgen Metadata for PNG: {filepath.name} ---")
    metadata = read_bead_metadata(filepath)
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    if not metadata:
        print("  No beadgen-specific metadata found.")
    print("-" * (31 + len(filepath.name)))
    return bool(metadata)


def main():
    if len(sys.argv) < 2:
        print("Usage: python extract_beadgen_meta.py <filename.png>")
        sys.exit(1)

    filepath = Path(sys.argv[1])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        sys.exit(1)
    if filepath.suffix.lower() != ".png":
        print(f"Error: Unsupported file type '{filepath.suffix}'. Please provide a .png file.")
        sys.exit(1)

    try:
        extract_png_metadata(filepath)
    except UnidentifiedImageError:
        print(f"Error: Could not read PNG file: {filepath}")
        sys.exit(1)


if __name__ == "__main__":
    main()
