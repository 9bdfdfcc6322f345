"""
Source normalizer: raw generative-model output → runnable manim scene.

normalize() is total. Whatever text comes in (empty, prose, half a
script, a well-formed fenced block) the result carries the manim import
and a Scene subclass with a construct() method.

Stages, each a pure function over strings:
  1. extract_description  — first prose-looking line, ≤200 chars
  2. extract_code         — fenced block → structural lines → fallback scene
  3. repair               — REPAIR_STEPS applied in order
  4. extract_duration     — first plausible "N seconds"-style hint, else 10

This is structural repair only. Nothing here makes generated code safe to
execute or checks that it is semantically valid manim.
"""
from __future__ import annotations

import logging
import re
from typing import Callable

from schemas.normalized_script import Extraction, NormalizedScript

logger = logging.getLogger(__name__)

FRAMEWORK_IMPORT = "from manim import *"
FALLBACK_CLASS_NAME = "GeneratedAnimation"
DEFAULT_DESCRIPTION = "Mathematical animation generated with Manim"
DEFAULT_DURATION_SECONDS = 10
MAX_DURATION_SECONDS = 300
MAX_DESCRIPTION_CHARS = 200

METHOD_INDENT = " " * 4
BODY_INDENT = " " * 8

FALLBACK_SCRIPT = f"""{FRAMEWORK_IMPORT}

class {FALLBACK_CLASS_NAME}(Scene):
    def construct(self):
        # Basic animation fallback
        text = Text("Generated Animation")
        self.play(Write(text))
        self.wait(2)

        circle = Circle(radius=1, color=BLUE)
        self.play(Create(circle))
        self.wait(1)

        self.play(FadeOut(text), FadeOut(circle))"""

_FENCED_BLOCK = re.compile(r"```[ \t]*(?:python3?|py)?[ \t]*\r?\n(.*?)```", re.DOTALL | re.IGNORECASE)
_LEADING_NON_WORD = re.compile(r"^\W*")

# Substrings that mark a line as scene code when no fence is present.
_STRUCTURAL_SIGNALS: tuple[str, ...] = (
    "class ",
    "def construct",
    "from manim",
    "import manim",
    "self.play",
    "self.add",
)

_DURATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:duration|time):\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*seconds?", re.IGNORECASE),
    re.compile(r"takes?\s*(\d+)", re.IGNORECASE),
)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def normalize(raw_text: str) -> NormalizedScript:
    """Derive a NormalizedScript from untrusted model output. Never raises."""
    raw_text = raw_text or ""
    code, extraction = extract_code(raw_text)
    script = NormalizedScript(
        executable_text=repair(code),
        description=extract_description(raw_text),
        estimated_duration_seconds=extract_duration(raw_text),
        extraction=extraction,
    )
    logger.debug(
        "normalized | extraction=%s | duration=%ds | %d chars",
        extraction.value,
        script.estimated_duration_seconds,
        len(script.executable_text),
    )
    return script


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def extract_description(raw_text: str) -> str:
    for line in raw_text.strip().split("\n"):
        lowered = line.lower()
        if (
            len(line.strip()) > 20
            and "```" not in line
            and "duration" not in lowered
            and "code" not in lowered
        ):
            description = line
            break
    else:
        description = DEFAULT_DESCRIPTION

    description = _LEADING_NON_WORD.sub("", description)[:MAX_DESCRIPTION_CHARS].strip()
    return description or DEFAULT_DESCRIPTION


def extract_code(raw_text: str) -> tuple[str, Extraction]:
    """
    Pick the scene source out of *raw_text*.

    Priority: first fenced block (trimmed), then every line carrying a
    structural signal, then FALLBACK_SCRIPT.
    """
    match = _FENCED_BLOCK.search(raw_text)
    if match and match.group(1).strip():
        return match.group(1).strip(), Extraction.FENCED

    structural = [
        line for line in raw_text.split("\n")
        if any(signal in line for signal in _STRUCTURAL_SIGNALS)
    ]
    if structural:
        return "\n".join(structural), Extraction.STRUCTURAL

    logger.warning("No scene code found in model output (%d chars); using fallback scene", len(raw_text))
    return FALLBACK_SCRIPT, Extraction.FALLBACK


def extract_duration(raw_text: str) -> int:
    # Only the first match of each pattern is considered.
    for pattern in _DURATION_PATTERNS:
        match = pattern.search(raw_text)
        if not match:
            continue
        digits = match.group(1).lstrip("0") or "0"
        # Longer than the bound means out of range; int() rejects very long digit runs.
        if len(digits) > len(str(MAX_DURATION_SECONDS)):
            continue
        value = int(digits)
        if 0 < value <= MAX_DURATION_SECONDS:
            return value
    return DEFAULT_DURATION_SECONDS


# ---------------------------------------------------------------------------
# Structural repair
# ---------------------------------------------------------------------------

def ensure_import(code: str) -> str:
    if "from manim import" in code:
        return code
    return f"{FRAMEWORK_IMPORT}\n\n{code}"


def ensure_scene_class(code: str) -> str:
    """Wrap loose statements in GeneratedAnimation.construct unless a Scene class exists."""
    if "class " in code and "Scene" in code:
        return code

    body = [
        line for line in code.split("\n")
        if "from manim" not in line and "import" not in line and line.strip()
    ]
    header = f"{FRAMEWORK_IMPORT}\n\nclass {FALLBACK_CLASS_NAME}(Scene):\n{METHOD_INDENT}def construct(self):"
    if not body:
        # Nothing to wrap: an empty construct() is a syntax error, so pad it.
        body = ["self.wait(1)"]
    return header + "\n" + "\n".join(BODY_INDENT + line for line in body)


def fix_indentation(code: str) -> str:
    """
    Force construct() bodies to the canonical 8-space indentation.

    Lines before the construct declaration pass through unchanged. After it,
    non-blank lines that neither start with 8 spaces nor declare another
    method are re-indented to 8 spaces.
    """
    fixed: list[str] = []
    in_class = False
    in_method = False

    for line in code.split("\n"):
        if "class " in line and "Scene" in line:
            fixed.append(line)
            in_class = True
        elif "def construct(self):" in line:
            fixed.append(METHOD_INDENT + line.strip())
            in_method = True
        elif in_method and line.strip():
            if not line.startswith(BODY_INDENT) and not line.startswith(METHOD_INDENT + "def"):
                fixed.append(BODY_INDENT + line.strip())
            else:
                fixed.append(line)
        else:
            fixed.append(line)

    if in_method and not in_class:
        logger.debug("construct() found outside a Scene class declaration")
    return "\n".join(fixed)


REPAIR_STEPS: tuple[Callable[[str], str], ...] = (
    ensure_import,
    ensure_scene_class,
    fix_indentation,
)


def repair(code: str) -> str:
    for step in REPAIR_STEPS:
        code = step(code)
    return code if code.strip() else FALLBACK_SCRIPT
