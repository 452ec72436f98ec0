"""
Intent package — taxonomy types and the multi-signal scorer.

Modules
-------
types    Intent enum, Signal, ScoreVector helpers, IntentResult
scorer   aggregate() / detect() / override_result()
"""
