"""DependencyPolicy: screens submissions against a capability denylist.

Pure logic, no I/O.  Signatures are walked in order and the first match
wins.  Matching is case-insensitive and purely textual: this is a UX filter
that spares sandbox capacity for workloads that are certain to fail, not a
security boundary.  Obfuscated names, reflection or transitive dependencies
pulled in by the build tool are not detected.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from runbox.runtime.errors import PolicyViolationError
from runbox.runtime.policy.models import CapabilitySignature, PolicyConfig, PolicyViolation

if TYPE_CHECKING:
    from runbox.models import SourceUnit

_NO_BROWSER = "requires a browser which is not available in this containerized environment"
_NO_DISPLAY = "requires a display server which is not available in this headless environment"

DEFAULT_SIGNATURES: tuple[CapabilitySignature, ...] = (
    CapabilitySignature(pattern=r"selenium|webdriver", capability="Selenium WebDriver", reason=_NO_BROWSER),
    CapabilitySignature(pattern=r"playwright", capability="Playwright", reason=_NO_BROWSER),
    CapabilitySignature(pattern=r"puppeteer", capability="Puppeteer", reason=_NO_BROWSER),
    CapabilitySignature(
        pattern=r"javafx|swing|awt\.Frame",
        capability="GUI frameworks (JavaFX/Swing)",
        reason=_NO_DISPLAY,
    ),
    CapabilitySignature(
        pattern=r"^\s*(?:import|from)\s+(?:tkinter|PyQt\d|PySide\d|wx)\b",
        capability="GUI toolkits (Tkinter/Qt/wxPython)",
        reason=_NO_DISPLAY,
    ),
)


class DependencyPolicy:
    """Evaluate a :class:`SourceUnit` against a :class:`PolicyConfig`."""

    def __init__(self, config: PolicyConfig | None = None) -> None:
        self._config = config or PolicyConfig()
        signatures = list(DEFAULT_SIGNATURES) if self._config.include_defaults else []
        signatures.extend(self._config.signatures)
        self._compiled = [
            (sig, re.compile(sig.pattern, re.IGNORECASE | re.MULTILINE)) for sig in signatures
        ]

    @property
    def config(self) -> PolicyConfig:
        return self._config

    @property
    def signatures(self) -> list[CapabilitySignature]:
        return [sig for sig, _ in self._compiled]

    def screen(self, unit: SourceUnit) -> PolicyViolation | None:
        """Return the first violation found in *unit*, or ``None``.

        The build descriptor is checked before the code for each signature,
        since declared dependencies are the more reliable signal.
        """
        if not self._config.enabled:
            return None

        texts = (("build_descriptor", unit.build_descriptor or ""), ("code", unit.code))
        for sig, regex in self._compiled:
            for source, text in texts:
                if text and regex.search(text):
                    return PolicyViolation(
                        capability=sig.capability,
                        human_reason=self._describe(sig),
                        source=source,
                    )
        return None

    def enforce(self, unit: SourceUnit) -> None:
        """Raise :class:`PolicyViolationError` if *unit* fails screening."""
        violation = self.screen(unit)
        if violation is not None:
            raise PolicyViolationError(violation)

    @staticmethod
    def _describe(sig: CapabilitySignature) -> str:
        reason = f" {sig.reason}." if sig.reason else "."
        return (
            f"Unsupported dependency detected: {sig.capability}{reason} "
            "This environment supports console applications, unit tests and "
            "data-processing libraries. Use a local environment with "
            f"{sig.capability} support instead."
        )
