from backend.app.services.providers.cobalt import CobaltProvider
from backend.app.services.providers.data_api import DataApiProvider
from backend.app.services.providers.innertube import InnerTubeProvider
from backend.app.services.providers.invidious import InvidiousProvider
from backend.app.services.providers.piped import PipedProvider
from backend.app.services.providers.po_token import PoTokenSource
from backend.app.services.providers.ytdlp_provider import YtDlpProvider

__all__ = [
    "CobaltProvider",
    "DataApiProvider",
    "InnerTubeProvider",
    "InvidiousProvider",
    "PipedProvider",
    "PoTokenSource",
    "YtDlpProvider",
]
