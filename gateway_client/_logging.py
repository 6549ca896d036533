# =============================================================================
# Gateway Client -- Logging
# =============================================================================

import logging

logger = logging.getLogger("gateway_client")
