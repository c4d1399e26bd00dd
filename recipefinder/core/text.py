import re


def clean_md(text: str) -> str:
    """
    Sanitize markdown artifacts from text.
    Removes:
    - Leading headers (#, ##)
    - Bold markers (**, __)
    - Leading bullets (-, *)
    """
    if not text:
        return ""

    # Remove bolding (**text** -> text)
    text = re.sub(r"(\*\*|__)(.*?)\1", r"\2", text)

    # Remove leading headers (# Title -> Title)
    text = re.sub(r"^\s*#+\s+", "", text)

    # Remove leading bullets (- Item -> Item)
    text = re.sub(r"^\s*[-*•]\s+", "", text)

    return text.strip()


def clamp(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[:length-1].rstrip() + "…"


def clean_steps(steps: list[str]) -> list[str]:
    """
    Normalize generated instruction steps:
    - Split multi-line entries into separate steps
    - Strip markdown and leading numbering ("1.", "2)")
    - Drop empties and exact duplicates
    """
    cleaned: list[str] = []
    for raw in steps or []:
        for line in str(raw).split("\n"):
            s = clean_md(line)
            s = re.sub(r"^\s*\d+\s*[.)]\s*", "", s).strip()
            if s and s not in cleaned:
                cleaned.append(s)
    return cleaned
