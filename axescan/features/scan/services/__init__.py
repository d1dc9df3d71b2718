"""
Scan Services

Organized by responsibility:

1. browser/ - Headless Chrome
   - session.py: Launch profiles per environment, session acquisition and teardown
   - navigation.py: Two-tier page loading (network idle, then DOMContentLoaded + settle)

2. axe/ - Rule engine
   - script_source.py: Bundled vs latest-from-CDN axe-core script
   - runner.py: Injection, axe.run(), normalized violations/passes
   - evidence.py: Per-element violation screenshots

3. scoring.py - Impact-weighted 0-100 accessibility score

4. repository.py - Scan records (create, get, conditional finalize, freshness lookup)

5. orchestrator.py - initiate() on the request side, execute() in the worker

6. history.py - History, dashboard stats and poller-facing scan responses
"""
