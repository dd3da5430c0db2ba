"""
Core package: states, transitions, transition groups and the state machine.

Architecture:
- States own their reachable targets, hooks, handlers and context
- Transition groups own transitions, tags, middleware and inherited configuration
- The resolver merges group configuration down the hierarchy
- The state machine ties states, groups and the runtime together
"""
