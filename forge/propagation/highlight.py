"""Split section text into recency-coloured fragments."""

from html import escape

from forge.propagation.store import PropagationStore
from forge.state import Fragment

_CSS_CLASSES = {
    "green": "highlight-green",
    "yellow": "highlight-yellow",
}


def split_highlights(
    text: str, stage: str, section: str, store: PropagationStore
) -> list[Fragment]:
    """Partition text into fragments coloured by the store's highlight recency.

    Registered items are tried longest first at each position, so a short
    highlight never pre-empts a longer overlapping one; at equal length the
    earlier-registered item wins. Items no longer present in text are
    skipped. Concatenating the fragment texts always gives back text.
    """
    if not text:
        return []

    items = [i for i in store.items(stage, section) if i["text"]]
    if not items:
        return [{"text": text, "color": "none"}]

    # dict.fromkeys dedupes in registration order; sorted() keeps it for ties.
    candidates = sorted(dict.fromkeys(i["text"] for i in items), key=len, reverse=True)

    fragments: list[Fragment] = []
    index = 0
    while index < len(text):
        match = next((c for c in candidates if text.startswith(c, index)), None)
        if match is not None:
            color = store.get_highlight_color(stage, section, match)
            fragments.append({"text": match, "color": color})
            index += len(match)
            continue

        next_index = len(text)
        for c in candidates:
            found = text.find(c, index)
            if found != -1 and found < next_index:
                next_index = found
        fragments.append({"text": text[index:next_index], "color": "none"})
        index = next_index

    return fragments


def render_markup(fragments: list[Fragment]) -> str:
    """Render fragments as HTML, wrapping coloured runs in a span."""
    parts = []
    for fragment in fragments:
        css = _CSS_CLASSES.get(fragment["color"])
        if css is None:
            parts.append(escape(fragment["text"]))
        else:
            parts.append(f'<span class="{css}">{escape(fragment["text"])}</span>')
    return "".join(parts)


def render_terminal(fragments: list[Fragment]) -> str:
    """Render fragments with ANSI colours for the command line."""
    codes = {"green": "\033[32m", "yellow": "\033[33m"}
    parts = []
    for fragment in fragments:
        code = codes.get(fragment["color"])
        parts.append(f"{code}{fragment['text']}\033[0m" if code else fragment["text"])
    return "".join(parts)
