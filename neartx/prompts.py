"""Operator prompts used while resolving commands."""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

MAX_PROMPT_ATTEMPTS = 5

T = TypeVar("T")

InputFunc = Callable[[str], str]
OutputFunc = Callable[[str], None]
Validator = Callable[[T], Optional[str]]


class FieldResolutionFailed(RuntimeError):
    """Raised when a field cannot be resolved from arguments or prompts."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"could not resolve {field}: {reason}")
        self.field = field
        self.reason = reason


class Prompter:
    """Collect single values from the operator.

    ``input_func`` and ``output_func`` default to the terminal; tests pass
    scripted callables. A non-interactive prompter refuses to ask and raises
    ``FieldResolutionFailed`` for the field instead.
    """

    def __init__(
        self,
        input_func: InputFunc = input,
        output_func: OutputFunc = print,
        *,
        interactive: bool = True,
        max_attempts: int = MAX_PROMPT_ATTEMPTS,
    ) -> None:
        self._input = input_func
        self._output = output_func
        self.interactive = interactive
        self.max_attempts = max_attempts

    @classmethod
    def disabled(cls) -> "Prompter":
        return cls(interactive=False)

    def notify(self, message: str) -> None:
        self._output(message)

    def _require_interactive(self, field: str) -> None:
        if not self.interactive:
            raise FieldResolutionFailed(
                field, "no value was supplied and interactive prompts are disabled"
            )

    def ask(
        self,
        field: str,
        prompt: str,
        parse: Callable[[str], T],
        *,
        default: str | None = None,
        validate: Validator | None = None,
    ) -> T:
        """Prompt until *parse* and *validate* accept the answer.

        Blank input takes *default* when one is given. After
        ``max_attempts`` rejected answers the last reason is raised as a
        ``FieldResolutionFailed`` naming *field*.
        """

        self._require_interactive(field)
        suffix = f" [{default}]" if default is not None else ""
        reason = "no answer"
        for _ in range(self.max_attempts):
            raw = self._input(f"{prompt}{suffix}: ").strip()
            if not raw:
                if default is None:
                    reason = "a value is required"
                    self._output("Please enter a value.")
                    continue
                raw = default
            try:
                value = parse(raw)
            except ValueError as exc:
                reason = str(exc)
                self._output(f"Invalid value: {exc}")
                continue
            if validate is not None:
                problem = validate(value)
                if problem:
                    reason = problem
                    self._output(problem)
                    continue
            return value
        logger.debug("Giving up on %s after %d attempts", field, self.max_attempts)
        raise FieldResolutionFailed(field, f"{reason} (after {self.max_attempts} attempts)")

    def text(self, field: str, prompt: str, *, default: str | None = None, validate: Validator | None = None) -> str:
        return self.ask(field, prompt, str, default=default, validate=validate)

    def choice(self, field: str, prompt: str, choices: Mapping[str, str]) -> str:
        """Prompt for one key of *choices* (key -> description).

        Answers may be the 1-based menu number or the key itself.
        """

        self._require_interactive(field)
        keys = list(choices)
        self._output(prompt)
        for index, key in enumerate(keys, start=1):
            self._output(f"  [{index}] {key} - {choices[key]}")

        def parse(raw: str) -> str:
            normalized = raw.strip().lower()
            if normalized.isdigit() and 1 <= int(normalized) <= len(keys):
                return keys[int(normalized) - 1]
            for key in keys:
                if normalized == key.lower():
                    return key
            raise ValueError(f"choose one of: {', '.join(keys)}")

        return self.ask(field, "Select an option", parse)
