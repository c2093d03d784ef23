"""Application ports"""
from jmap_engine.application.interfaces.services import (ITokenProvider,
                                                         ITransport)

__all__ = ["ITransport", "ITokenProvider"]
