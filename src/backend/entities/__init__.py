"""
Entities package.

Each subdirectory holds one piece of the session/thread lifecycle:
- session_store/: session id -> remote thread id mapping with sliding TTL
- run_orchestrator/: chat turns, session teardown, per-session locking and the reaper
- shared/: error taxonomy, protocols and the Assistants API client
"""
