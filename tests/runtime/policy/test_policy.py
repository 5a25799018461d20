"""Tests for DependencyPolicy screening."""

import pytest

from runbox.models import Language, ProjectType, SourceUnit
from runbox.runtime.errors import PolicyViolationError
from runbox.runtime.policy import CapabilitySignature, DependencyPolicy, PolicyConfig

_POM = "<project><dependencies>{deps}</dependencies></project>"


def _declarative(code: str, deps: str = "") -> SourceUnit:
    return SourceUnit(
        code=code,
        project_type=ProjectType.DECLARATIVE,
        build_descriptor=_POM.format(deps=deps),
    )


class TestScreen:
    def test_clean_console_program_passes(self) -> None:
        unit = SourceUnit(code='public class Main { public static void main(String[] a) { System.out.println("hi"); } }')
        assert DependencyPolicy().screen(unit) is None

    @pytest.mark.parametrize(
        ("code", "capability"),
        [
            ("import org.openqa.selenium.WebDriver;", "Selenium WebDriver"),
            ("import com.microsoft.playwright.*;", "Playwright"),
            ("// drives Puppeteer", "Puppeteer"),
            ("import javax.swing.JFrame;", "GUI frameworks (JavaFX/Swing)"),
            ("new java.awt.Frame();", "GUI frameworks (JavaFX/Swing)"),
        ],
    )
    def test_denylisted_code(self, code: str, capability: str) -> None:
        violation = DependencyPolicy().screen(SourceUnit(code=code))
        assert violation is not None
        assert violation.capability == capability
        assert violation.source == "code"
        assert capability in violation.human_reason

    def test_case_insensitive(self) -> None:
        violation = DependencyPolicy().screen(SourceUnit(code="// uses PLAYWRIGHT"))
        assert violation is not None
        assert violation.capability == "Playwright"

    def test_descriptor_checked_before_code(self) -> None:
        unit = _declarative(
            "import org.openqa.selenium.WebDriver;",
            deps="<artifactId>selenium-java</artifactId>",
        )
        violation = DependencyPolicy().screen(unit)
        assert violation is not None
        assert violation.source == "build_descriptor"

    def test_first_signature_wins(self) -> None:
        unit = SourceUnit(code="// playwright then selenium")
        violation = DependencyPolicy().screen(unit)
        assert violation is not None
        assert violation.capability == "Selenium WebDriver"

    def test_python_gui_import(self) -> None:
        unit = SourceUnit(code="import tkinter as tk\n", language=Language.PYTHON)
        violation = DependencyPolicy().screen(unit)
        assert violation is not None
        assert "Tkinter" in violation.capability

    def test_python_gui_word_in_text_is_allowed(self) -> None:
        unit = SourceUnit(code='print("tkinter is not imported here")\n', language=Language.PYTHON)
        assert DependencyPolicy().screen(unit) is None

    def test_disabled_policy_allows_everything(self) -> None:
        policy = DependencyPolicy(PolicyConfig(enabled=False))
        assert policy.screen(SourceUnit(code="import org.openqa.selenium.WebDriver;")) is None

    def test_custom_signatures_after_defaults(self) -> None:
        config = PolicyConfig(
            signatures=[CapabilitySignature(pattern=r"java\.net\.Socket", capability="Raw sockets")],
        )
        policy = DependencyPolicy(config)
        assert policy.signatures[-1].capability == "Raw sockets"
        violation = policy.screen(SourceUnit(code="new java.net.Socket();"))
        assert violation is not None
        assert violation.capability == "Raw sockets"

    def test_without_defaults(self) -> None:
        policy = DependencyPolicy(PolicyConfig(include_defaults=False))
        assert policy.signatures == []
        assert policy.screen(SourceUnit(code="import org.openqa.selenium.WebDriver;")) is None


class TestEnforce:
    def test_raises_with_violation(self) -> None:
        with pytest.raises(PolicyViolationError) as exc_info:
            DependencyPolicy().enforce(SourceUnit(code="import com.microsoft.playwright.*;"))
        assert exc_info.value.violation.capability == "Playwright"

    def test_clean_unit_passes(self) -> None:
        DependencyPolicy().enforce(SourceUnit(code="class Main {}"))
