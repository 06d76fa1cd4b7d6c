"""Meeting Context Retrieval Engine.

Decides which prior and live conversational context is relevant to a
question asked during or after a meeting, and assembles it into a bounded,
ranked context block for an answering model.
"""

__version__ = "0.1.0"
