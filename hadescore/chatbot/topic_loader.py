"""
Topic Loading
=============

Discovers topic definitions and hands them to ``TopicRegistry``.

Two formats are understood:

- Python modules exposing ``TOPIC`` (one definition) or ``TOPICS`` (a
  list). A definition is a mapping or an object whose attributes and
  methods follow the topic contract.
- YAML files holding one data-only topic mapping (or a list of them).

A file that fails to load is logged and skipped; the rest still load.
"""

import importlib
import importlib.util
import logging
import pkgutil
import sys
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

from .topic import Topic, TopicLoadError, TopicRegistry

logger = logging.getLogger(__name__)

BUILTIN_PACKAGE = "hadescore.topics"


class TopicLoader:
    """Collects topic definitions from modules, packages and YAML files."""

    def __init__(self):
        self.loaded_files: List[str] = []
        self.failed_files: List[str] = []

    def load_module_definitions(self, module: Any, source: Optional[str] = None) -> List[Topic]:
        source = source or getattr(module, '__name__', repr(module))
        if hasattr(module, 'TOPICS'):
            raw = list(module.TOPICS)
        elif hasattr(module, 'TOPIC'):
            raw = [module.TOPIC]
        else:
            raise TopicLoadError(f"Module {source} defines neither TOPIC nor TOPICS", source=source)
        return self._normalize(raw, source)

    def load_yaml(self, path: Union[str, Path]) -> List[Topic]:
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise TopicLoadError(f"Cannot read {path}: {e}", source=str(path))

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise TopicLoadError(f"{path} must hold a topic mapping or a list of them", source=str(path))
        return self._normalize(data, str(path))

    def load_python_file(self, path: Union[str, Path]) -> List[Topic]:
        path = Path(path)
        module_name = f"hades_topic_{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise TopicLoadError(f"Cannot load topic module from {path}", source=str(path))

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise TopicLoadError(f"Error executing {path}: {e}", source=str(path))
        return self.load_module_definitions(module, source=str(path))

    def load_directory(self, directory: Union[str, Path]) -> List[Topic]:
        """Every ``*.py`` and ``*.yaml``/``*.yml`` topic file in a directory, sorted by name."""
        directory = Path(directory)
        if not directory.is_dir():
            logger.error(f"Topics directory not found: {directory}")
            return []

        topics: List[Topic] = []
        for path in sorted(directory.iterdir()):
            if path.name.startswith('_') or path.name.startswith('test_'):
                continue
            if path.suffix == '.py':
                loader = self.load_python_file
            elif path.suffix in ('.yaml', '.yml'):
                loader = self.load_yaml
            else:
                continue
            topics.extend(self._load_file(path, loader))
        return topics

    def load_package(self, package_name: str = BUILTIN_PACKAGE) -> List[Topic]:
        """Topic modules of an importable package plus the YAML files shipped beside them."""
        package = importlib.import_module(package_name)
        topics: List[Topic] = []

        for info in sorted(pkgutil.iter_modules(package.__path__), key=lambda i: i.name):
            if info.name.startswith('_') or info.name.startswith('test_'):
                continue
            name = f"{package_name}.{info.name}"
            try:
                topics.extend(self.load_module_definitions(importlib.import_module(name), source=name))
                self.loaded_files.append(name)
            except TopicLoadError as e:
                self.failed_files.append(name)
                logger.error(f"Skipping topic module {name}: {e}")
            except Exception as e:
                self.failed_files.append(name)
                logger.error(f"Error importing topic module {name}: {e}")

        for directory in package.__path__:
            for path in sorted(Path(directory).glob('*.yaml')):
                topics.extend(self._load_file(path, self.load_yaml))

        return topics

    def _normalize(self, definitions: List[Any], source: str) -> List[Topic]:
        """Topics of one file; a malformed entry is logged and skipped, its siblings kept."""
        topics = []
        for index, definition in enumerate(definitions):
            try:
                topics.append(Topic.from_definition(definition, source=source))
            except TopicLoadError as e:
                logger.error(f"Skipping topic #{index} in {source}: {e}")
        if definitions and not topics:
            raise TopicLoadError(f"No valid topic definitions in {source}", source=source)
        return topics

    def _load_file(self, path: Path, loader) -> List[Topic]:
        try:
            topics = loader(path)
        except TopicLoadError as e:
            self.failed_files.append(str(path))
            logger.error(f"Skipping topic file {path.name}: {e}")
            return []
        self.loaded_files.append(str(path))
        logger.debug(f"Loaded {[t.name for t in topics]} from {path.name}")
        return topics


def load_builtin_topics(extra_directory: Optional[Union[str, Path]] = None) -> TopicRegistry:
    """Registry of the shipped topics, plus any found in ``extra_directory``."""
    loader = TopicLoader()
    definitions = loader.load_package()
    if extra_directory:
        definitions.extend(loader.load_directory(extra_directory))
    return TopicRegistry.from_definitions(definitions)
