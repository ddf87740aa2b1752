"""Go code checker tool: gofmt, scratch module build and golangci-lint."""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from agent_relay.config import GoCheckToolConfig, get_config
from agent_relay.exceptions import ToolExecutionError
from agent_relay.logging import get_logger
from agent_relay.tools.registry import Tool, ToolResult

log = get_logger(__name__)

CHECK_GO_CODE = "check_go_code"


@dataclass
class ProcessOutput:
    """Captured result of one external process."""

    returncode: int
    stdout: str
    stderr: str = ""


class CodeCheckReport(BaseModel):
    """Outcome of one check; build and lint problems are data, not errors."""

    code: str
    formatted_code: str = ""
    format_error: str | None = None
    build_ok: bool = True
    build_output: str = ""
    lint_output: str = ""

    @property
    def lint_clean(self) -> bool:
        return not self.lint_output

    def render(self) -> str:
        """Render the report the way it is shown to models and users."""
        if self.format_error is not None:
            return (
                f"Code Formatting Error:\n{self.format_error}\n\n"
                f"Original code:\n```go\n{self.code}\n```"
            )

        parts = ["Code Analysis Results:\n\n"]
        parts.append(f"Formatted Code:\n```go\n{self.formatted_code}\n```\n\n")

        if self.build_ok:
            parts.append("Build Status: Success ✓\n\n")
        else:
            parts.append(f"Build Errors:\n```\n{self.build_output}\n```\n\n")

        parts.append("Linter Results:\n")
        if self.lint_output:
            parts.append(f"```\n{self.lint_output}\n```\n")
        else:
            parts.append("No linting issues found ✓\n")
        return "".join(parts)


def ensure_package_clause(code: str) -> str:
    """Make a bare snippet a complete compilation unit."""
    if "package " not in code:
        return "package main\n\n" + code
    return code


class GoCodeCheckTool(Tool):
    """Format, build and lint Go code in an isolated scratch module."""

    name = CHECK_GO_CODE
    description = "Check Go code for errors and style issues using golint."
    parameters = {
        "type": "object",
        "properties": {
            "code": {
                "type": "string",
                "description": "The Go code to check for errors.",
            },
        },
        "required": ["code"],
    }

    def __init__(self, config: GoCheckToolConfig | None = None):
        self.config = config or get_config().tools.go_check
        self.process_timeout = max(1, int(self.config.timeout))
        # gofmt, go mod init, golangci-lint and go build run back to back.
        self.timeout_seconds = float(self.process_timeout * 4)

    async def _run(
        self,
        args: list[str],
        cwd: Path | str | None = None,
        stdin: str | None = None,
        merge_stderr: bool = True,
    ) -> ProcessOutput:
        """Run one external process and capture its output.

        Raises:
            ToolExecutionError: the binary cannot be started or times out.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise ToolExecutionError(self.name, f"failed to run {args[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode("utf-8") if stdin is not None else None),
                timeout=self.process_timeout,
            )
        except asyncio.TimeoutError:
            raise ToolExecutionError(self.name, f"{args[0]} timed out after {self.process_timeout}s")
        finally:
            # Reached on timeout and on cancellation from the registry cap.
            if process.returncode is None:
                await self._reap(process)

        return ProcessOutput(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
        )

    @staticmethod
    async def _reap(process: asyncio.subprocess.Process) -> None:
        """Kill a still-running child and wait for it to exit."""
        try:
            process.kill()
        except ProcessLookupError:
            pass
        # Shielded so a cancelled caller still waits for the exit.
        await asyncio.shield(process.wait())
        log.debug("Killed external process", pid=process.pid)

    def _lint_args(self) -> list[str]:
        args = [self.config.golangci_lint_binary, "run", "--disable-all"]
        args.extend(f"--enable={linter}" for linter in self.config.linters)
        args.extend(["--max-issues-per-linter=0", "--max-same-issues=0"])
        return args

    async def check(self, code: str) -> CodeCheckReport:
        """Run the full check pipeline on ``code``.

        Raises:
            ToolExecutionError: the pipeline itself could not run (missing
                binaries, scratch workspace or module setup failures).
        """
        code = ensure_package_clause(code)

        formatted = await self._run([self.config.gofmt_binary], stdin=code, merge_stderr=False)
        if formatted.returncode != 0:
            error_text = (formatted.stderr or formatted.stdout).strip()
            log.info("Go code failed to format", error=error_text)
            return CodeCheckReport(code=code, format_error=error_text)
        formatted_code = formatted.stdout

        try:
            scratch = tempfile.TemporaryDirectory(prefix="golint_")
        except OSError as e:
            raise ToolExecutionError(self.name, f"failed to create temp directory: {e}") from e

        with scratch as tmp_dir:
            mod_init = await self._run(
                [self.config.go_binary, "mod", "init", self.config.module_name],
                cwd=tmp_dir,
            )
            if mod_init.returncode != 0:
                raise ToolExecutionError(
                    self.name,
                    f"failed to initialize Go module (exit {mod_init.returncode})\nOutput: {mod_init.stdout}",
                )

            try:
                (Path(tmp_dir) / "main.go").write_text(formatted_code, encoding="utf-8")
            except OSError as e:
                raise ToolExecutionError(self.name, f"failed to write code file: {e}") from e

            lint = await self._run(self._lint_args(), cwd=tmp_dir)
            build = await self._run([self.config.go_binary, "build", "./..."], cwd=tmp_dir)

        report = CodeCheckReport(
            code=code,
            formatted_code=formatted_code,
            build_ok=build.returncode == 0,
            build_output="" if build.returncode == 0 else build.stdout,
            lint_output=lint.stdout if lint.returncode != 0 and lint.stdout else "",
        )
        log.info(
            "Go code checked",
            build_ok=report.build_ok,
            lint_clean=report.lint_clean,
        )
        return report

    async def execute(self, code: str, **kwargs: Any) -> ToolResult:
        try:
            report = await self.check(code)
        except ToolExecutionError as e:
            log.warning("Go code check could not run", error=str(e))
            return ToolResult(success=False, error=str(e))
        return ToolResult(
            success=True,
            content=report.render(),
            data=report.model_dump(),
        )
