"""
Context observer — in-session behavioral signals and hero re-triggering.

Modules:
  events            — typed interaction events (scroll, click, hover, visibility)
  scroll            — scroll velocity with sequence-gap filtering
  context_observer  — IDLE/OBSERVING state machine, accumulator, cooldown + decay
"""
