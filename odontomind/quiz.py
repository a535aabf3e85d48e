"""Simulated-test state machine.

    SELECTING --start--> ACTIVE --answer/advance ...--> FINISHED --reset--> SELECTING

The pause the UI shows between answering and moving on is not part of the
machine: callers answer, wait however long they like, then call ``advance``.
"""

import logging
import random
from collections import OrderedDict
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from odontomind.config import MAX_QUIZ_SESSIONS
from odontomind.errors import NoQuestionsError, NotFoundError, QuizStateError
from odontomind.schemas import DocumentOut, QuestionOut, QuizAttemptOut
from odontomind.utils import generate_unique_id, utcnow

logger = logging.getLogger(__name__)

ALL_TOPICS = "all"


class QuizState(str, Enum):
    SELECTING = "selecting"
    ACTIVE = "active"
    FINISHED = "finished"


def questions_for_topic(documents: Iterable[DocumentOut], topic: str) -> List[QuestionOut]:
    return [
        q
        for doc in documents
        if topic == ALL_TOPICS or doc.folder == topic
        for q in doc.questions
    ]


def percentage(score: int, total: int) -> int:
    """round(score / total * 100), halves rounded up; 0 when there is nothing to score."""
    if total <= 0:
        return 0
    return (200 * score + total) // (2 * total)


class QuizEngine:
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self.state = QuizState.SELECTING
        self.topic = ALL_TOPICS
        self.questions: List[QuestionOut] = []
        self.answers: List[Optional[str]] = []
        self.index = 0
        self.score = 0

    def _require(self, *states: QuizState) -> None:
        if self.state not in states:
            raise QuizStateError(f"Ação inválida no estado '{self.state.value}'.")

    @property
    def current_question(self) -> Optional[QuestionOut]:
        if self.state is not QuizState.ACTIVE:
            return None
        return self.questions[self.index]

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.total)

    def start(self, topic: str, documents: Iterable[DocumentOut]) -> None:
        self._require(QuizState.SELECTING)
        questions = questions_for_topic(documents, topic)
        if not questions:
            raise NoQuestionsError("Não há questões disponíveis para este tópico.")
        self._rng.shuffle(questions)
        self.topic = topic
        self.questions = questions
        self.answers = [None] * len(questions)
        self.index = 0
        self.score = 0
        self.state = QuizState.ACTIVE

    def answer(self, choice: str) -> bool:
        """Records the answer to the current question; each question can be answered once."""
        self._require(QuizState.ACTIVE)
        if self.answers[self.index] is not None:
            raise QuizStateError("Esta questão já foi respondida.")
        self.answers[self.index] = choice
        correct = choice == self.questions[self.index].correct_answer
        if correct:
            self.score += 1
        return correct

    def advance(self) -> Optional[QuizAttemptOut]:
        """Moves past an answered question. Returns the attempt record when the quiz ends."""
        self._require(QuizState.ACTIVE)
        if self.answers[self.index] is None:
            raise QuizStateError("Responda a questão atual antes de avançar.")
        if self.index < len(self.questions) - 1:
            self.index += 1
            return None
        self.state = QuizState.FINISHED
        logger.info("Quiz on topic %r finished: %d/%d", self.topic, self.score, self.total)
        return QuizAttemptOut(
            id=generate_unique_id("attempt"),
            date=utcnow(),
            score=self.score,
            total_questions=self.total,
            topic=self.topic,
        )

    def reset(self) -> None:
        self.state = QuizState.SELECTING
        self.topic = ALL_TOPICS
        self.questions = []
        self.answers = []
        self.index = 0
        self.score = 0


class QuizSessions:
    """Quiz engines by session id. Past ``limit`` the least recently used session is dropped."""

    def __init__(self, limit: int = MAX_QUIZ_SESSIONS) -> None:
        self.limit = limit
        self._engines: "OrderedDict[str, QuizEngine]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._engines)

    def create(self, rng: Optional[random.Random] = None) -> Tuple[str, QuizEngine]:
        session_id = generate_unique_id("quiz")
        self._engines[session_id] = QuizEngine(rng)
        while len(self._engines) > self.limit:
            dropped, _ = self._engines.popitem(last=False)
            logger.info("Dropping quiz session %s", dropped)
        return session_id, self._engines[session_id]

    def get(self, session_id: str) -> QuizEngine:
        engine = self._engines.get(session_id)
        if engine is None:
            raise NotFoundError("Simulado não encontrado.")
        self._engines.move_to_end(session_id)
        return engine
