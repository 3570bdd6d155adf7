"""
KAG intelligence core: signals, scores and recommendations.

Pure domain logic for the operations console. Callers load a persisted
SignalState, feed it a batch of domain events and receive updated state,
threshold-classified signals, weighted composite scores and evidence-gated
recommendations. Persistence, transport and actioning live outside this
package.
"""

__version__ = "1.0.0"
