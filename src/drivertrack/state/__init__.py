"""State layer.

Holds the single-slot durable store that sits between the sampling loop
and the delivery bridge, plus the motion classification policy.
"""
