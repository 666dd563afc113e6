# change_control/core/context.py

import contextvars

# Log enrichment only. Core operations always receive the acting identity as an argument.
correlation_id_ctx = contextvars.ContextVar("correlation_id", default=None)
actor_id_ctx = contextvars.ContextVar("actor_id", default=None)
