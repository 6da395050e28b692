"""opskit modules - Self-contained bricks shared by the command groups

- Interaction Handler: interactive and unattended selection/confirmation
"""

from . import interaction_handler

__all__ = ["interaction_handler"]
