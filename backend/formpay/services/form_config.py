import logging
import re
from typing import Sequence

from formpay.schemas.form_config import FormOption, FormStep

logger = logging.getLogger(__name__)

# Column order of the Form_Config sheet
COLUMNS = (
    "step_id",
    "question_text",
    "field_type",
    "is_required",
    "options",
    "placeholder",
    "validation_type",
    "display_order",
    "conditional_show",
    "auto_advance",
    "section",
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_flag(value) -> bool:
    return str(value or "") == "TRUE"


def parse_order(value) -> int:
    match = _LEADING_INT.match(str(value or ""))
    return int(match.group(1)) if match else 0


def parse_options(raw: str) -> list[FormOption]:
    """``"a:Alpha, b"`` -> ``[{value: a, label: Alpha}, {value: b, label: b}]``."""
    options = []
    for opt in raw.split(","):
        value, sep, label = opt.partition(":")
        if sep:
            options.append(FormOption(value=value.strip(), label=label.strip()))
        else:
            options.append(FormOption(value=opt.strip(), label=opt.strip()))
    return options


def parse_form_step(row: Sequence[str]) -> FormStep:
    cells = dict(zip(COLUMNS, list(row) + [""] * (len(COLUMNS) - len(row))))
    field_type = cells["field_type"] or ""
    options = []
    if cells["options"] and field_type == "select":
        options = parse_options(cells["options"])

    return FormStep(
        id=cells["step_id"] or "",
        title=cells["question_text"] or "",
        is_question=field_type != "welcome",
        is_required=parse_flag(cells["is_required"]),
        field_type=field_type,
        options=options,
        placeholder=cells["placeholder"] or "",
        validation_type=cells["validation_type"] or "",
        display_order=parse_order(cells["display_order"]),
        conditional_show=cells["conditional_show"] or "",
        auto_advance=parse_flag(cells["auto_advance"]),
        section=cells["section"] or "default",
    )


def parse_form_steps(rows: Sequence[Sequence[str]]) -> list[FormStep]:
    steps = [parse_form_step(row) for row in rows if row]
    steps.sort(key=lambda s: s.display_order)
    logger.debug(f"Parsed {len(steps)} form steps")
    return steps
