from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .errors import ModuleLoadError
from .module import DESCRIPTION_SUFFIXES, ModuleDefinition

logger = logging.getLogger(__name__)


ModuleLoader = Callable[[], ModuleDefinition]
PathFilter = Callable[[str], bool]


@dataclass
class ModuleEntry:
    """One registry slot: a module path and the way to realize it.

    Realization is single-flight. The first caller runs the loader while any
    concurrent callers wait on the entry lock; afterwards every caller sees
    the same module or the same ModuleLoadError. The loader is dropped after
    its one call.
    """

    path: str
    submodule: bool = False
    core: bool = False
    loader: Optional[ModuleLoader] = None
    module: Optional[ModuleDefinition] = None
    fault: Optional[ModuleLoadError] = None
    loaded: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def builtin(cls, module: ModuleDefinition) -> "ModuleEntry":
        return cls(
            path=f"core/{module.name}",
            submodule=module.submodule,
            core=True,
            module=module,
            loaded=True,
        )

    def get(self) -> ModuleDefinition:
        if not self.loaded:
            with self._lock:
                if not self.loaded:
                    self._realize()
        if self.fault is not None:
            # drop the previous caller's frames so they are not kept alive
            raise self.fault.with_traceback(None)
        return self.module

    def _realize(self) -> None:
        try:
            self.module = self.loader()
        except Exception as exc:
            logger.exception("Failed to load module %s", self.path)
            self.fault = _wrap(self.path, exc)
        except BaseException as exc:
            # still fail every later caller, then let the interrupt through
            logger.error("Loading module %s was interrupted: %r", self.path, exc)
            self.fault = _wrap(self.path, exc)
            raise
        finally:
            self.loader = None
            self.loaded = True


class ModuleRegistry:
    """
    Catalog of every module known to the process.

    Built-in modules are registered ready-made. File-backed modules are
    found by discover() and only parsed when first requested. A file one
    directory level below the root is a top-level module; anything deeper
    is a submodule.

    Example:
        registry = ModuleRegistry("modules")
        registry.discover()
        module = registry.get("appendicitis")
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        builtins: Optional[Iterable[ModuleDefinition]] = None,
    ) -> None:
        self.root = Path(root) if root is not None else None
        self._entries: Dict[str, ModuleEntry] = {}
        self._builtins = list(builtins or [])
        self._lock = threading.Lock()
        self._discovered = False

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(self, path: str, loader: ModuleLoader, submodule: bool = False) -> ModuleEntry:
        entry = ModuleEntry(path=path, submodule=submodule, loader=loader)
        self._entries[path] = entry
        return entry

    def register_builtin(self, module: ModuleDefinition) -> ModuleEntry:
        entry = ModuleEntry.builtin(module)
        self._entries[entry.path] = entry
        return entry

    def discover(self) -> int:
        """Register built-ins and scan the root for description files.

        Safe to call more than once; only the first call scans. A missing or
        unreadable root is logged and leaves only the built-ins registered.

        Returns:
            Number of registered entries.
        """
        with self._lock:
            if self._discovered:
                return len(self._entries)
            for module in self._builtins:
                self.register_builtin(module)

            submodules = 0
            try:
                for file_path in self._scan():
                    path = relative_module_path(file_path, self.root)
                    if path in self._entries:
                        logger.warning("Skipping %s: module %s is already registered", file_path, path)
                        continue
                    submodule = file_path.parent != self.root
                    if submodule:
                        submodules += 1
                    self.register(path, self._file_loader(file_path, submodule), submodule)
            except OSError as exc:
                logger.warning("Module discovery under %s failed: %s", self.root, exc)

            self._discovered = True
            logger.info(
                "Scanned %d modules and %d submodules.",
                len(self._entries) - submodules,
                submodules,
            )
            return len(self._entries)

    def _scan(self) -> List[Path]:
        if self.root is None:
            return []
        if not self.root.is_dir():
            raise FileNotFoundError(f"Module directory not found: {self.root}")
        found = []
        for dirpath, _dirnames, filenames in os.walk(self.root, onerror=_raise):
            for filename in sorted(filenames):
                candidate = Path(dirpath) / filename
                if candidate.suffix.lower() in DESCRIPTION_SUFFIXES and os.access(candidate, os.R_OK):
                    found.append(candidate)
        return sorted(found)

    def _file_loader(self, file_path: Path, submodule: bool) -> ModuleLoader:
        def load() -> ModuleDefinition:
            return ModuleDefinition.from_file(file_path, submodule=submodule, registry=self)

        return load

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def entry(self, path: str) -> Optional[ModuleEntry]:
        return self._entries.get(path)

    def get(self, path: str) -> Optional[ModuleDefinition]:
        """Return the module at path, loading it on first access.

        Returns None for unknown paths.

        Raises:
            ModuleLoadError: the module failed to load, now or earlier.
        """
        entry = self._entries.get(path)
        if entry is None:
            return None
        return entry.get()

    def list(self, path_filter: Optional[PathFilter] = None) -> List[ModuleDefinition]:
        """Return top-level modules.

        Built-ins are always included; the filter only applies to file-backed
        modules. Every submodule is loaded along the way, because other
        modules call into them, but none is returned.
        """
        modules: List[ModuleDefinition] = []
        for entry in list(self._entries.values()):
            if entry.submodule:
                entry.get()
            elif entry.core or path_filter is None or path_filter(entry.path):
                modules.append(entry.get())
        return modules

    def names(self) -> List[str]:
        """Every registered path, loaded or not."""
        return list(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _wrap(path: str, exc: BaseException) -> ModuleLoadError:
    fault = ModuleLoadError(path, exc)
    fault.__cause__ = exc
    return fault


def relative_module_path(file_path: Path, root: Path) -> str:
    """Path of a description file relative to root, without suffix, using '/'."""
    relative = file_path.relative_to(root).with_suffix("")
    return relative.as_posix()


def _raise(error: OSError) -> None:
    raise error


# =============================================================================
# Process-wide default registry
# =============================================================================

_default_registry: Optional[ModuleRegistry] = None
_default_lock = threading.Lock()


def get_registry() -> ModuleRegistry:
    """Return the process-wide registry, creating and discovering it once."""
    global _default_registry
    if _default_registry is None:
        with _default_lock:
            if _default_registry is None:
                from ..config import load_config
                from ..lib.lifecycle import LifecycleModule

                config = load_config()
                registry = ModuleRegistry(config.modules_dir, builtins=[LifecycleModule()])
                registry.discover()
                _default_registry = registry
    return _default_registry


def reset_registry() -> None:
    """Forget the process-wide registry (for tests)."""
    global _default_registry
    with _default_lock:
        _default_registry = None
