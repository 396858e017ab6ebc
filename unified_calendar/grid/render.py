from typing import List

from unified_calendar.models import CellState, DateWindow, EventKind, GridCell, GridRow

NAME_WIDTH = 24
CELL_WIDTH = 4

PLATFORM_LETTERS = {
    "airbnb": "A",
    "booking": "B",
}


def cell_classes(cell: GridCell) -> List[str]:
    """
    CSS classes for a cell, as used by the web viewer:
    "blocked-manual" / "blocked", or one class per occupying platform plus
    "entry-<platform>" / "exit-<platform>".
    """
    classes = ["cell"]

    if cell.state is CellState.BLOCKED:
        if cell.block_reason is EventKind.MANUAL_BLOCK:
            classes.append("blocked-manual")
        else:
            classes.append("blocked")
    else:
        for occupancy in cell.occupancy:
            platform = occupancy.platform.value
            classes.append(platform)
            if occupancy.is_entry:
                classes.append(f"entry-{platform}")
            if occupancy.is_exit:
                classes.append(f"exit-{platform}")

    if cell.is_sunday:
        classes.append("sunday")
    if cell.badge:
        classes.append("cleaning")
    return classes


def cell_label(cell: GridCell) -> str:
    """
    Short text for one cell: "##" manual block, "xx" platform block,
    platform letters for stays with "[" on entry and "]" on exit.
    """
    if cell.state is CellState.BLOCKED:
        text = "##" if cell.block_reason is EventKind.MANUAL_BLOCK else "xx"
    elif cell.state is CellState.OCCUPIED:
        text = ""
        for occupancy in cell.occupancy:
            letter = PLATFORM_LETTERS.get(occupancy.platform.value, "?")
            if occupancy.is_exit:
                text += f"{letter}]"
            if occupancy.is_entry:
                text += f"[{letter}"
            if not occupancy.is_entry and not occupancy.is_exit:
                text += letter
    else:
        text = "."

    if cell.badge:
        text += "*"
    return text


def render_grid(rows: List[GridRow], window: DateWindow) -> str:
    """Plain-text grid: one header line of days, one line per property, then badge legend."""
    days = window.days

    header = " " * NAME_WIDTH + "".join(d.strftime("%d").rjust(CELL_WIDTH) for d in days)
    weekdays = " " * NAME_WIDTH + "".join(d.strftime("%a")[:2].rjust(CELL_WIDTH) for d in days)
    lines = [
        f"{window.start.strftime('%d %b %Y')} → {window.end.strftime('%d %b %Y')}",
        weekdays,
        header,
    ]

    badges = []
    for row in rows:
        name = row.display_name[:NAME_WIDTH - 1].ljust(NAME_WIDTH)
        lines.append(name + "".join(cell_label(c).rjust(CELL_WIDTH) for c in row.cells))
        for cell in row.cells:
            if cell.badge:
                badges.append(
                    f"  {cell.day.strftime('%a %d %b')} – {row.display_name}: "
                    f"{cell.badge.glyph} {cell.badge.vendor}"
                )

    if badges:
        lines.append("")
        lines.append("Cleanings:")
        lines.extend(badges)

    return "\n".join(lines)
