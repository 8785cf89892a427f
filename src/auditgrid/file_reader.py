"""Read and write sheet data as TSV files."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003 - used at runtime


def parse_tsv(content: str) -> list[list[str]]:
    """Parse TSV content into a 2D grid.

    Handles escaped characters (\\t, \\n, \\r, \\\\).

    Args:
        content: TSV file content

    Returns:
        2D list of cell values
    """
    if not content or not content.strip():
        return []

    lines = content.rstrip("\n").split("\n")
    return [[unescape_tsv_value(cell) for cell in line.split("\t")] for line in lines]


def format_tsv(grid: list[list[str]]) -> str:
    """Serialize a 2D grid to TSV, escaping tabs, newlines and backslashes."""
    if not grid:
        return ""
    return "".join(
        "\t".join(escape_tsv_value(value) for value in row) + "\n" for row in grid
    )


def read_tsv(path: Path) -> list[list[str]]:
    return parse_tsv(path.read_text(encoding="utf-8"))


def write_tsv(path: Path, grid: list[list[str]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_tsv(grid), encoding="utf-8")
    return path


def escape_tsv_value(value: str) -> str:
    """Escape a value for TSV format."""
    return (
        value.replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def unescape_tsv_value(value: str) -> str:
    """Unescape a TSV value."""
    result: list[str] = []
    i = 0
    while i < len(value):
        if value[i] == "\\" and i + 1 < len(value):
            next_char = value[i + 1]
            if next_char == "t":
                result.append("\t")
            elif next_char == "n":
                result.append("\n")
            elif next_char == "r":
                result.append("\r")
            elif next_char == "\\":
                result.append("\\")
            else:
                result.append(value[i : i + 2])
            i += 2
        else:
            result.append(value[i])
            i += 1
    return "".join(result)
