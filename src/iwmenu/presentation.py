"""
Rendering of chooser entries and canonicalisation of chooser output.

Glyph mode renders ``<glyph><spaces><label>``; symbolic mode renders
``<label>\\0icon\\x1f<icon-name>``, the row-option syntax understood by rofi,
fuzzel and wofi; plain mode renders the label alone.
"""

from typing import Iterable, List, Optional, Tuple

from .icons import IconMode, Icons

SYMBOLIC_MARKER = "\0icon\x1f"

SECURE_NETWORK_TYPES = ("wep", "psk", "8021x")


def signal_bucket(signal: int) -> str:
    """
    Map a signal strength to a bucket name.

    Args:
        signal: Signal strength in 100 * dBm, as the daemon reports it

    Returns:
        One of 'weak', 'ok', 'good', 'excellent'
    """
    if signal <= -7500:
        return "weak"
    if signal <= -5000:
        return "ok"
    if signal <= -2500:
        return "good"
    return "excellent"


def signal_icon_key(signal: int, network_type: str) -> str:
    security = "secure" if network_type in SECURE_NETWORK_TYPES else "open"
    return f"signal_{signal_bucket(signal)}_{security}"


def format_entry(label: str, icon: str, mode: IconMode, spaces: int = 1) -> str:
    if mode is IconMode.GLYPH:
        return f"{icon}{' ' * spaces}{label}"
    if mode is IconMode.SYMBOLIC:
        return f"{label}{SYMBOLIC_MARKER}{icon}"
    return label


def format_entries(icons: Icons, items: Iterable[Tuple[str, str]],
                   mode: IconMode, spaces: int = 1) -> List[str]:
    """Render (icon_key, label) pairs."""
    return [format_entry(label, icons.get(key, mode), mode, spaces) for key, label in items]


def format_network(icons: Icons, name: str, network_type: str, signal: int,
                   connected: bool, mode: IconMode, spaces: int = 1) -> str:
    # The connected network swaps its signal icon for the connected one, so
    # the label stays exactly the network name.
    key = "connected" if connected else signal_icon_key(signal, network_type)
    return format_entry(name, icons.get(key, mode), mode, spaces)


def clean_output(output: Optional[str], mode: IconMode) -> str:
    """
    Recover the label from a line the chooser printed.

    Glyph mode drops leading non-alphanumeric characters; symbolic mode keeps
    what precedes the first NUL; plain mode only trims.
    """
    if not output:
        return ""
    text = output.strip()
    if mode is IconMode.GLYPH:
        index = 0
        while index < len(text) and not text[index].isalnum():
            index += 1
        return text[index:].strip()
    if mode is IconMode.SYMBOLIC:
        return text.split("\0", 1)[0].strip()
    return text
