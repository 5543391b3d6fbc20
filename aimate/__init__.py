"""aiMate: message-interception safety core for LLM chat.

Plugins inspect, rewrite or block chat messages before they reach the
language model and after it responds.  The bundled mental-health safety
plugin tracks escalating distress across a conversation and replaces
harmful model replies.
"""

__version__ = "0.1.0"
