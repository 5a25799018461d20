"""Build plans: the fixed step sequences used to build and run a submission.

:class:`PlanSelector` is a pure mapping from ``(language, project type,
uses annotated tests)`` to one of four plans.  Steps are argv lists; no
submission content ever appears in them.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from runbox.models import Language, ProjectType

if TYPE_CHECKING:
    from runbox.config import EngineConfig

TEST_ANNOTATIONS = ("@Test", "@Before", "@After")

_MAVEN = ("mvn", "-B", "-Djansi.force=false", "-Dstyle.color=never")
MAVEN_CACHE_DIR = "/root/.m2"
SEEDED_REPOSITORY_DIR = "/opt/maven-repository"


class PlanKind(str, Enum):
    STANDALONE_COMPILE_RUN = "standalone-compile-run"
    DECLARATIVE_BUILD_AND_TEST = "declarative-build-and-test"
    DECLARATIVE_BUILD_AND_RUN = "declarative-build-and-run"
    SCRIPTED_RUN = "scripted-run"


class Toolchain(str, Enum):
    """Which tool produces the output the classifier has to read."""

    JAVAC = "javac"
    MAVEN = "maven"
    PYTHON = "python"


class StepKind(str, Enum):
    BUILD = "build"
    TEST = "test"
    RUN = "run"


class BuildStep(BaseModel):
    """One process invocation inside the sandbox."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StepKind
    argv: tuple[str, ...]
    timeout: float = Field(..., gt=0, description="Step timeout in seconds.")
    pipe_stdin: bool = Field(default=False, description="Feed the submission's stdin to this step.")


class BuildPlan(BaseModel):
    """Immutable strategy for one request, selected once and never mutated."""

    model_config = ConfigDict(frozen=True)

    kind: PlanKind
    toolchain: Toolchain
    image: str
    steps: tuple[BuildStep, ...]
    deadline: float = Field(..., gt=0, description="Wall-clock ceiling for all steps, in seconds.")
    source_path: str = Field(..., description="Workspace-relative path the code is written to.")
    descriptor_path: str | None = Field(default=None, description="Workspace-relative build descriptor path.")
    workdir: str = Field(default="/workspace", description="Working directory inside the sandbox.")
    needs_network: bool = Field(default=False, description="Dependency resolution wants network access.")
    exec_storage: bool = Field(default=False, description="Ephemeral storage must allow executables.")
    cache_dir: str | None = Field(default=None, description="In-sandbox dependency cache mount point.")
    repository_dir: str | None = Field(
        default=None, description="Pre-populated local repository read by offline builds."
    )

    @property
    def invocations(self) -> list[str]:
        """Human-readable command lines, used to scrub diagnostics."""
        return [" ".join(step.argv) for step in self.steps]


def uses_annotated_tests(code: str) -> bool:
    """Whether *code* is itself a test suite (JUnit-style annotations)."""
    return any(marker in code for marker in TEST_ANNOTATIONS)


class PlanSelector:
    """Map a submission's shape to a :class:`BuildPlan`."""

    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    def select(
        self,
        language: Language,
        project_type: ProjectType,
        uses_annotated_tests: bool = False,
    ) -> BuildPlan:
        """Return the plan for *language* / *project_type*.

        Scripted declarative projects are rejected when the
        :class:`~runbox.models.SourceUnit` is built, so every valid
        combination lands on exactly one plan here.
        """
        if language.scripted:
            return self._scripted_run()
        if project_type == ProjectType.STANDALONE:
            return self._standalone_compile_run()
        if uses_annotated_tests:
            return self._declarative_build_and_test()
        return self._declarative_build_and_run()

    def _standalone_compile_run(self) -> BuildPlan:
        timeout = self._config.execution_timeout_ms / 1000
        return BuildPlan(
            kind=PlanKind.STANDALONE_COMPILE_RUN,
            toolchain=Toolchain.JAVAC,
            image=self._config.java_image,
            steps=(
                BuildStep(
                    name="compile",
                    kind=StepKind.BUILD,
                    argv=("javac", "-encoding", "UTF-8", "Main.java"),
                    timeout=timeout,
                ),
                BuildStep(
                    name="run",
                    kind=StepKind.RUN,
                    argv=("java", "-cp", ".", "Main"),
                    timeout=timeout,
                    pipe_stdin=True,
                ),
            ),
            deadline=timeout,
            source_path="Main.java",
        )

    def _declarative_build_and_test(self) -> BuildPlan:
        return BuildPlan(
            kind=PlanKind.DECLARATIVE_BUILD_AND_TEST,
            toolchain=Toolchain.MAVEN,
            image=self._config.maven_image,
            steps=(
                BuildStep(
                    name="build-and-test",
                    kind=StepKind.TEST,
                    argv=(*self._maven(), "clean", "test"),
                    timeout=self._config.build_timeout_ms / 1000,
                ),
            ),
            deadline=self._config.plan_timeout_ms / 1000,
            source_path="src/test/java/com/example/MainTest.java",
            descriptor_path="pom.xml",
            needs_network=True,
            exec_storage=True,
            cache_dir=self._cache_dir(),
            repository_dir=self._repository_dir(),
        )

    def _declarative_build_and_run(self) -> BuildPlan:
        return BuildPlan(
            kind=PlanKind.DECLARATIVE_BUILD_AND_RUN,
            toolchain=Toolchain.MAVEN,
            image=self._config.maven_image,
            steps=(
                BuildStep(
                    name="compile",
                    kind=StepKind.BUILD,
                    argv=(*self._maven(), "-q", "compile"),
                    timeout=self._config.build_timeout_ms / 1000,
                ),
                BuildStep(
                    name="run",
                    kind=StepKind.RUN,
                    argv=(*self._maven(), "-q", "exec:java", "-Dexec.mainClass=com.example.Main"),
                    timeout=self._config.declarative_run_timeout_ms / 1000,
                    pipe_stdin=True,
                ),
            ),
            deadline=self._config.plan_timeout_ms / 1000,
            source_path="src/main/java/com/example/Main.java",
            descriptor_path="pom.xml",
            needs_network=True,
            exec_storage=True,
            cache_dir=self._cache_dir(),
            repository_dir=self._repository_dir(),
        )

    def _scripted_run(self) -> BuildPlan:
        timeout = self._config.execution_timeout_ms / 1000
        return BuildPlan(
            kind=PlanKind.SCRIPTED_RUN,
            toolchain=Toolchain.PYTHON,
            image=self._config.python_image,
            steps=(
                BuildStep(
                    name="run",
                    kind=StepKind.RUN,
                    argv=(self._config.python_command, "main.py"),
                    timeout=timeout,
                    pipe_stdin=True,
                ),
            ),
            deadline=timeout,
            source_path="main.py",
        )

    def _maven(self) -> tuple[str, ...]:
        # Offline unless the build may resolve dependencies over the network.
        if self._config.build_network_enabled:
            return _MAVEN
        repository = self._repository_dir()
        if repository is None:
            return (*_MAVEN, "-o")
        return (*_MAVEN, "-o", f"-Dmaven.repo.local={repository}")

    def _cache_dir(self) -> str | None:
        # Offline builds read the image's own repository, so nothing is mounted over it.
        return MAVEN_CACHE_DIR if self._config.build_network_enabled else None

    def _repository_dir(self) -> str | None:
        repository = self._config.maven_repository
        if self._config.build_network_enabled or repository is None:
            return None
        if self._config.isolation_enabled:
            return SEEDED_REPOSITORY_DIR
        return str(repository)
