"""
Personalised product recommendation engine.

Responsibilities:
- Build a deterministic preference profile from explicit preferences and
  the decayed interaction history.
- Filter the catalog to a bounded candidate set, widening when it is thin.
- Score candidates on content similarity and on similar users' behaviour,
  blend the two by confidence, and rank under a diversity cap.
- Absorb sparse or missing data through fallbacks reported as ``degraded``.
"""
