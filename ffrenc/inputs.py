"""
Input enumeration and output planning.

Inputs come from one explicit path (`-i clip.mov`) or from newline-delimited
paths on stdin (`-i -`). Every input is canonicalized; an output path is
derived from the template with {SLUG} replaced by the input's file stem.

Both steps run before any job exists, so every error here is a
PreFlightError and the batch never starts.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, TextIO, Tuple

from .config import SLUG_PLACEHOLDER
from .execution.errors import NoInputsError, OutputExistsError

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"


def _canonicalize(raw: str) -> Path:
    return Path(raw).expanduser().resolve(strict=True)


def read_path_list(lines: Iterable[str]) -> List[Path]:
    """
    Canonicalize one path per line.

    Blank lines are skipped. Lines that do not resolve to an existing path
    are logged and skipped.
    """
    paths: List[Path] = []
    for line in lines:
        raw = line.rstrip("\r\n")
        if not raw.strip():
            continue
        try:
            paths.append(_canonicalize(raw))
        except (OSError, RuntimeError) as e:
            logger.warning(f"[Inputs] Unable to canonicalize input path {raw}: {e}")
    return paths


def resolve_inputs(input_arg: str, stdin: Optional[TextIO] = None) -> List[Path]:
    """
    Resolve the -i/--input argument into canonical input paths.

    Raises:
        NoInputsError: If nothing resolved, or a single explicit path
            does not exist
    """
    if input_arg == STDIN_MARKER:
        inputs = read_path_list(stdin if stdin is not None else sys.stdin)
    else:
        try:
            inputs = [_canonicalize(input_arg)]
        except (OSError, RuntimeError) as e:
            raise NoInputsError(f"Unable to canonicalize input path {input_arg}: {e}") from e

    if not inputs:
        raise NoInputsError()

    logger.info(f"[Inputs] Validated {len(inputs)} inputs", extra={"inputs": [str(p) for p in inputs]})
    return inputs


def render_output_path(input_path: Path, template: str, cwd: Optional[Path] = None) -> Path:
    """Substitute {SLUG} with the input's stem, relative to cwd."""
    base = cwd if cwd is not None else Path.cwd()
    return base / template.replace(SLUG_PLACEHOLDER, input_path.stem)


def plan_outputs(
    inputs: List[Path],
    template: str,
    overwrite: bool = False,
    cwd: Optional[Path] = None,
) -> List[Tuple[Path, Path]]:
    """
    Pair every input with its output path.

    Raises:
        OutputExistsError: If an output exists and overwrite is False
    """
    plan: List[Tuple[Path, Path]] = []
    for input_path in inputs:
        output_path = render_output_path(input_path, template, cwd)
        if not overwrite and output_path.exists():
            raise OutputExistsError(output_path)
        plan.append((input_path, output_path))
    return plan
