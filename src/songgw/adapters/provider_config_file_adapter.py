import threading
from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError

from songgw.core.interfaces.providers import ProvidersPort
from songgw.core.models.providers_config import ProviderConfig, ProvidersConfig
from songgw.core.settings import logger


class ProviderConfigFileAdapter(ProvidersPort):
    """Provider definitions from a YAML file (see providers.yaml).

    Read once at construction; the gateway never switches vendors while
    running. A missing, unparsable or invalid file is logged and leaves the
    list empty, so the registry falls back to built-in defaults.
    """

    def __init__(self, config_path: str | Path):
        self._path = Path(config_path)
        self._lock = threading.Lock()
        self._providers: List[ProviderConfig] = []
        self.load_providers()

    def _read(self) -> List[ProviderConfig]:
        with self._path.open(encoding="utf-8") as file:
            content = yaml.safe_load(file) or {}
        return ProvidersConfig.model_validate(content).providers

    def load_providers(self) -> None:
        try:
            providers = self._read()
        except FileNotFoundError:
            logger.error(f"[providers:load] no providers file at {self._path}")
            return
        except yaml.YAMLError as e:
            logger.error(f"[providers:load] cannot parse {self._path}: {e}")
            return
        except ValidationError as e:
            logger.error(f"[providers:load] invalid provider definition in {self._path}: {e.errors()[:3]}")
            return

        with self._lock:
            self._providers = providers
        logger.info(f"[providers:load] {len(providers)} definition(s) from {self._path}: {[p.name for p in providers]}")

    def get_providers(self) -> List[ProviderConfig]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._providers]
