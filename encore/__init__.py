"""
Encore — Engagement & Reward Engine for Community Lounges
==========================================================
Keeps the derived engagement aggregates of a lounge platform consistent:
vote counters, per-lounge fan scores, achievement badges, quest progress
and leaderboards.  Content, membership and notification delivery live in
other services; Encore only maintains the numbers they produce.

Package layout::

    encore/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Score points, badge catalogue, helpers
    ├── errors.py          # NotFound / Forbidden / Validation taxonomy
    ├── jobs.py            # CLI for the external scheduler
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session + async helper
    │   └── models.py      # ORM models (votes, scores, badges, quests)
    ├── engine/
    │   ├── actions.py     # Closed action-type variants + mappings
    │   └── badges.py      # Pure threshold badge rules
    ├── services/
    │   ├── vote_service.py     # Vote Ledger
    │   ├── score_service.py    # Score Ledger + monthly/rank batches
    │   ├── badge_service.py    # Badge Awarder
    │   ├── quest_service.py    # Quest Engine
    │   ├── ranking_service.py  # Leaderboards
    │   ├── activity_service.py # Single entry point for user actions
    │   ├── notification_service.py  # Fire-and-forget notifier
    │   └── audit.py            # admin_log helpers
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / config / JWT dependencies
        └── routes/        # Votes, fan scores, quests, admin
"""

__version__ = "0.1.0"
