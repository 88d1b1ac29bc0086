"""
Answer: grounded chat answers built from retrieved chunks.

The chat model only ever sees the reference block assembled from search
results; an empty search short-circuits to a fixed deflection message.
"""
