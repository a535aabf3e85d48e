import io
from typing import Iterable, List, Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from pydantic import BaseModel  # noqa: E402

from odontomind.quiz import percentage  # noqa: E402
from odontomind.schemas import QuizAttemptOut, SummaryOut  # noqa: E402


class TopicStats(BaseModel):
    topic: str
    score: int
    total: int
    accuracy: int


class ProfileStats(BaseModel):
    total_attempts: int
    overall_accuracy: int
    topics: List[TopicStats]


class AttemptView(BaseModel):
    id: str
    topic: str
    score: int
    total_questions: int
    percentage: int


class Dashboard(BaseModel):
    recent_summaries: List[SummaryOut]
    recent_attempts: List[AttemptView]


def compute_stats(attempts: Iterable[QuizAttemptOut]) -> ProfileStats:
    """Per-topic and overall accuracy over the quiz attempt log.

    Topics whose attempts add up to zero questions are left out rather than
    reported as 0/0.
    """
    attempts = list(attempts)
    by_topic = {}
    for attempt in attempts:
        score, total = by_topic.get(attempt.topic, (0, 0))
        by_topic[attempt.topic] = (score + attempt.score, total + attempt.total_questions)

    topics = [
        TopicStats(topic=topic, score=score, total=total, accuracy=percentage(score, total))
        for topic, (score, total) in by_topic.items()
        if total > 0
    ]
    overall_score = sum(a.score for a in attempts)
    overall_total = sum(a.total_questions for a in attempts)
    return ProfileStats(
        total_attempts=len(attempts),
        overall_accuracy=percentage(overall_score, overall_total),
        topics=topics,
    )


def render_accuracy_chart(stats: ProfileStats) -> Optional[bytes]:
    """Creates a bar chart of accuracy per topic and returns it as a PNG image."""
    if not stats.topics:
        return None

    names = [t.topic for t in stats.topics]
    values = [t.accuracy for t in stats.topics]

    fig = plt.figure(figsize=(10, 5))
    try:
        plt.bar(names, values, color="#0ea5e9", width=0.5)
        plt.ylim(0, 100)
        plt.ylabel("Acertos (%)")
        plt.title("Desempenho por Tópico (%)")
        plt.grid(axis="y", linestyle="--", color="#e2e8f0")
        plt.xticks(rotation=45, ha="right")
        plt.tight_layout()

        img = io.BytesIO()
        plt.savefig(img, format="png")
        return img.getvalue()
    finally:
        plt.close(fig)  # Close the plot to free memory


def dashboard(summaries: List[SummaryOut], attempts: List[QuizAttemptOut], limit: int = 3) -> Dashboard:
    """The most recent summaries and attempts, newest first."""
    recent = list(reversed(attempts[-limit:])) if limit else []
    return Dashboard(
        recent_summaries=list(reversed(summaries[-limit:])) if limit else [],
        recent_attempts=[
            AttemptView(
                id=a.id,
                topic=a.topic,
                score=a.score,
                total_questions=a.total_questions,
                percentage=percentage(a.score, a.total_questions),
            )
            for a in recent
        ],
    )
