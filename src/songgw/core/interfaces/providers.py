from abc import ABC, abstractmethod
from typing import List

from songgw.core.models.providers_config import ProviderConfig


class ProvidersPort(ABC):
    """Source of provider connection definitions read at startup.

    The registry asks for the whole list once and picks the definition that
    matches the configured provider; an empty list means "use the built-in
    defaults plus env overrides".
    """

    @abstractmethod
    def load_providers(self) -> None: ...

    @abstractmethod
    def get_providers(self) -> List[ProviderConfig]: ...
