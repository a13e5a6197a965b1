"""Interactive core: session state, watch, logs, dispatcher and orchestrator."""
