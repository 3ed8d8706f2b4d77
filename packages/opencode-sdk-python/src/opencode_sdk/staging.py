"""Isolated config directories and the environment of the server process."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
import os
from pathlib import Path, PurePosixPath
import re
import shutil
import tempfile
from typing import TYPE_CHECKING, Union

from .exceptions import ConfigStagingError
from .log import get_logger


if TYPE_CHECKING:
    from importlib.resources.abc import Traversable


logger = get_logger(__name__)

# A virtual file set: relative path -> content, or a directory tree
# (a filesystem path or an importlib.resources Traversable).
FileSet = Union[Mapping[str, Union[bytes, str]], "Traversable", os.PathLike]

STAGING_PREFIX = "opencode_"

_ENV_REF = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z0-9_]+))")


def expand_env(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace ``$NAME`` and ``${NAME}`` with values from ``environ``.

    Unset variables expand to the empty string.
    """
    env = os.environ if environ is None else environ

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        return env.get(name, "")

    return _ENV_REF.sub(_sub, text)


def iter_file_set(files: FileSet) -> Iterator[tuple[PurePosixPath, bytes]]:
    """Yield ``(relative_path, content)`` for every leaf file of a file set."""
    if isinstance(files, Mapping):
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else bytes(content)
            yield _relative(name), data
        return

    root = Path(files) if isinstance(files, (str, os.PathLike)) else files
    stack: list[tuple[PurePosixPath, Traversable]] = [(PurePosixPath(), root)]
    while stack:
        prefix, node = stack.pop()
        for child in sorted(node.iterdir(), key=lambda c: c.name):
            rel = prefix / child.name
            if child.is_dir():
                stack.append((rel, child))
            elif child.is_file():
                yield rel, child.read_bytes()


def _relative(name: str) -> PurePosixPath:
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise ConfigStagingError(f"invalid path in config file set: {name!r}")
    return path


def stage_config(
    files: FileSet,
    *,
    environ: Mapping[str, str] | None = None,
    parent: str | os.PathLike | None = None,
) -> Path:
    """Write ``files`` into a fresh directory, expanding env references.

    Either the whole tree is written or the directory is removed again and
    ConfigStagingError is raised.

    Args:
        files: The virtual file set to materialize
        environ: Variables used for expansion (defaults to ``os.environ``)
        parent: Where to create the directory (defaults to the temp dir)

    Returns:
        Path of the created directory
    """
    try:
        root = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=parent))
    except OSError as exc:
        raise ConfigStagingError(f"failed to create config directory: {exc}") from exc
    logger.info("Created config directory", path=str(root))

    try:
        count = 0
        for rel, raw in iter_file_set(files):
            dest = root.joinpath(*rel.parts)
            try:
                content = expand_env(raw.decode("utf-8"), environ)
            except UnicodeDecodeError as exc:
                raise ConfigStagingError(f"config file {rel} is not valid UTF-8") from exc
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(content.encode("utf-8"))
            count += 1
    except ConfigStagingError:
        shutil.rmtree(root, ignore_errors=True)
        raise
    except OSError as exc:
        shutil.rmtree(root, ignore_errors=True)
        raise ConfigStagingError(f"failed to stage config files: {exc}") from exc

    logger.info("Staged config files", path=str(root), files=count)
    return root


def build_environment(
    base: Mapping[str, str],
    *,
    config_dir: str | os.PathLike | None = None,
    api_key: str | None = None,
) -> dict[str, str]:
    """Return the environment for the server process.

    ``base`` is copied, never modified. With a config directory the process
    gets it as its home and config root; otherwise it sees ``base`` as is.
    """
    env = dict(base)
    if config_dir:
        root = os.fspath(config_dir)
        env["HOME"] = root
        env["XDG_CONFIG_HOME"] = root
        env["OPENCODE_CONFIG_DIR"] = root
        config_json = Path(root) / "config.json"
        if config_json.is_file():
            env["OPENCODE_CONFIG"] = str(config_json)
        logger.info("Using isolated config directory", dir=root)
    else:
        logger.info("Using system config directory")
    if api_key:
        env["OPENCODE_API_KEY"] = api_key
        logger.info("Set OPENCODE_API_KEY environment variable")
    return env
