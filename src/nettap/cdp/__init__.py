"""Chrome DevTools Protocol glue for nettap.

Connects to a page, queues its events, and translates them into capture
events.

PUBLIC API:
  - CDPSession: WebSocket CDP client with an event queue
  - NetworkEventAssembler: CDP events to click/request/response events
  - CDPBodyReader: Response body access through Network.getResponseBody
"""

from nettap.cdp.helpers import CDPBodyReader, NetworkEventAssembler
from nettap.cdp.session import CDPSession

__all__ = ["CDPSession", "NetworkEventAssembler", "CDPBodyReader"]
