"""State layer.

Everything the persistor needs to know about the observed state tree:
how to walk and rebuild it, which keys are eligible for persistence, and
the event used to hand a restored tree back to the container.
"""
