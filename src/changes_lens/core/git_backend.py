"""Git-backed collaborators for the diff cache.

GitWorkingDirectory supplies the three operations the core consumes:
- list_changes: `git status --porcelain=v1 -z` parsed into a WorkingDirectoryStatus
- stat_modification_time: os.stat in a worker thread (st_mtime_ns)
- compute_diff: `git diff HEAD` (working directory vs last commit) parsed into a diff model

Git is run with asyncio subprocesses so the event loop stays responsive
while many diffs are computed concurrently. Status listing retries with
tenacity while another git process holds index.lock.
"""

import asyncio
import os
from pathlib import Path

from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from changes_lens.models.diff import DiffKind, WorkingDirectoryDiff
from changes_lens.models.status import FileEntry, FileStatusKind, WorkingDirectoryStatus

from .diff_engine import (
    DEFAULT_LARGE_DIFF_BYTES,
    DEFAULT_MAX_DIFF_BYTES,
    compute_untracked_diff,
    parse_unified_diff,
)


class GitCommandError(RuntimeError):
    """Raised when a git command fails, times out, or cannot be started."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = ""):
        self.command = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"git {' '.join(args)} failed (exit {returncode}){detail}")


class GitLockedError(GitCommandError):
    """Raised when git reports that index.lock is held by another process."""


_UNMERGED_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


def status_kind_from_code(code: str) -> FileStatusKind | None:
    """Map a porcelain XY status code to a FileStatusKind.

    Returns None for ignored entries ('!!').
    """
    if code == "!!":
        return None
    if code == "??":
        return FileStatusKind.UNTRACKED
    if code in _UNMERGED_CODES:
        return FileStatusKind.CONFLICTED
    index, worktree = code[0], code[1]
    if "R" in code:
        return FileStatusKind.RENAMED
    if "C" in code:
        return FileStatusKind.COPIED
    if index == "A":
        return FileStatusKind.NEW
    if index == "D" or worktree == "D":
        return FileStatusKind.DELETED
    return FileStatusKind.MODIFIED


def parse_porcelain_status(output: str) -> WorkingDirectoryStatus:
    """Parse NUL-separated `git status --porcelain=v1 -z` output.

    Renamed and copied entries are followed by an extra field holding the
    source path. The order git reports is preserved.
    """
    fields = output.split("\0")
    entries: list[FileEntry] = []
    i = 0
    while i < len(fields):
        record = fields[i]
        i += 1
        if len(record) < 4:
            continue
        code, path = record[:2], record[3:]
        old_path = None
        if "R" in code or "C" in code:
            old_path = fields[i] if i < len(fields) else None
            i += 1
        kind = status_kind_from_code(code)
        if kind is None:
            continue
        entries.append(FileEntry(id=path, path=path, status=kind, old_path=old_path))
    return WorkingDirectoryStatus(files=tuple(entries))


async def _kill_and_reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await asyncio.shield(process.wait())


class GitWorkingDirectory:
    """Lists changes and computes per-file diffs for one repository."""

    def __init__(
        self,
        repo_path: Path | str,
        timeout: float = 30.0,
        large_diff_bytes: int = DEFAULT_LARGE_DIFF_BYTES,
        max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self._timeout = timeout
        self._large_diff_bytes = large_diff_bytes
        self._max_diff_bytes = max_diff_bytes

    @classmethod
    async def discover(cls, path: Path | str, **kwargs) -> "GitWorkingDirectory":
        """Create an instance rooted at the top level of the repository containing ``path``."""
        located = cls(path, **kwargs)
        toplevel = await located._run_git("rev-parse", "--show-toplevel")
        return cls(toplevel.strip(), **kwargs)

    async def _run_git(self, *args: str) -> str:
        """Run git in the repository and return its decoded stdout.

        Raises:
            GitLockedError: If stderr mentions index.lock
            GitCommandError: On non-zero exit, timeout, or missing git binary
        """
        argv = list(args)
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                "-C",
                str(self.repo_path),
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise GitCommandError(argv, None, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await _kill_and_reap(process)
            raise GitCommandError(argv, None, f"timed out after {self._timeout}s")
        except asyncio.CancelledError:
            # Refresh cancelled at shutdown; do not leave git running
            await _kill_and_reap(process)
            raise

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace")
            if "index.lock" in message:
                raise GitLockedError(argv, process.returncode, message)
            raise GitCommandError(argv, process.returncode, message)
        return stdout.decode("utf-8", errors="replace")

    @retry(
        retry=retry_if_exception_type(GitLockedError),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        reraise=True,
    )
    async def list_changes(self) -> WorkingDirectoryStatus:
        """List changed files in the working directory, in git's order."""
        output = await self._run_git(
            "status", "--porcelain=v1", "-z", "--untracked-files=all"
        )
        status = parse_porcelain_status(output)
        logger.debug(f"git status listed {len(status.files)} changed files in {self.repo_path}")
        return status

    async def stat_modification_time(self, path: str) -> int:
        """Return the file's modification time in nanoseconds.

        Raises:
            OSError: If the file cannot be stat'ed (e.g. deleted files)
        """
        stat_result = await asyncio.to_thread(os.stat, self.repo_path / path)
        return stat_result.st_mtime_ns

    async def compute_diff(self, entry: FileEntry) -> WorkingDirectoryDiff:
        """Compute the working directory diff for one file.

        Tracked files are diffed against HEAD, so staging never changes the
        result and a diff cached under an unchanged modification time stays
        valid. Untracked files, and every file before the first commit, are
        diffed against nothing.
        """
        if entry.status == FileStatusKind.UNTRACKED:
            return await self._diff_against_nothing(entry.path)

        try:
            output = await self._run_git(
                "diff", "HEAD", "--no-ext-diff", "--no-color", "--", entry.path
            )
        except GitCommandError:
            if await self._has_head():
                raise
            return await self._diff_against_nothing(entry.path)

        return parse_unified_diff(
            output,
            large_diff_bytes=self._large_diff_bytes,
            max_diff_bytes=self._max_diff_bytes,
        )

    async def _has_head(self) -> bool:
        try:
            await self._run_git("rev-parse", "--verify", "--quiet", "HEAD")
        except GitCommandError:
            return False
        return True

    async def _diff_against_nothing(self, path: str) -> WorkingDirectoryDiff:
        file_path = self.repo_path / path
        # Oversized files are never read into memory
        size = (await asyncio.to_thread(file_path.stat)).st_size
        if size > self._max_diff_bytes:
            return WorkingDirectoryDiff(kind=DiffKind.UNRENDERABLE)

        content = await asyncio.to_thread(file_path.read_bytes)
        return compute_untracked_diff(
            content,
            path=path,
            large_diff_bytes=self._large_diff_bytes,
            max_diff_bytes=self._max_diff_bytes,
        )
