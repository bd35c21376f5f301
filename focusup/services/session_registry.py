"""
Per-user session controllers.
One active session per user; controllers are created lazily and share
the tracker, reward service and timers.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from focusup.domain import SprintCompletion
from focusup.services.daily_tracker import DailyTracker
from focusup.services.reward_service import RewardService
from focusup.services.session_controller import SessionController
from focusup.services.verification import VerificationController

logger = logging.getLogger("focusup.session")


class SessionRegistry:
    """Holds one SessionController per user"""

    def __init__(self, persistence, timers, clock: Callable[[], datetime] = datetime.now):
        self.persistence = persistence
        self.timers = timers
        self.clock = clock
        self.tracker = DailyTracker(persistence, clock)
        self.reward_service = RewardService(persistence, self.tracker, clock)
        self.controllers: Dict[str, SessionController] = {}
        self.completions: Dict[str, SprintCompletion] = {}

    def get(self, user_id: str) -> SessionController:
        controller = self.controllers.get(user_id)
        if controller is None:
            controller = SessionController(
                self.persistence,
                self.reward_service,
                self.timers,
                verification=VerificationController(self.timers),
                clock=self.clock,
                on_verification_challenge=self._challenge_announcer(user_id),
            )
            controller.register_completion_callback(self._completion_recorder(user_id))
            self.controllers[user_id] = controller
        return controller

    def last_completion(self, user_id: str) -> Optional[SprintCompletion]:
        return self.completions.get(user_id)

    def _completion_recorder(self, user_id: str) -> Callable[[SprintCompletion], None]:
        def record(completion: SprintCompletion) -> None:
            self.completions[user_id] = completion
            amount = completion.reward.amount if completion.reward else 0
            logger.info(f"Sprint complete for {user_id}: {amount} coins")
        return record

    def _challenge_announcer(self, user_id: str) -> Callable[[], None]:
        def announce() -> None:
            logger.info(f"Attentiveness check raised for {user_id}, waiting for confirmation")
        return announce

    def shutdown(self) -> None:
        """Cancel every controller's timers"""
        for controller in self.controllers.values():
            controller.reset()
        self.controllers.clear()
