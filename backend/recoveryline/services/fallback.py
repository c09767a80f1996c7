"""Canned replies used when the responder cannot answer.

Rules are checked in order against the lowercased message; the first rule
whose keyword appears as a word (or word prefix, so "eating" matches "eat"
but "great" does not) wins. The last rule is the default, so a fallback is
never empty.
"""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class FallbackContext:
    """What a canned reply may mention."""

    recovery_day: int | None = None
    remaining_tasks: int = 0


@dataclass(frozen=True)
class FallbackRule:
    name: str
    keywords: tuple[str, ...]
    template: str

    def matches(self, text: str) -> bool:
        return any(re.search(rf"\b{re.escape(keyword)}", text) for keyword in self.keywords)


FALLBACK_RULES: tuple[FallbackRule, ...] = (
    FallbackRule(
        name="pain",
        keywords=("pain", "hurt", "sore"),
        template=(
            "I'm sorry you're uncomfortable. On a scale of 0 to 10, how would you rate your pain right now? "
            "Some discomfort is normal{day_phrase}. Take prescribed medications as directed, ice for 20 minutes "
            "every 2-3 hours, and keep the joint elevated when resting. If pain is severe or getting worse, "
            "please contact your care team right away."
        ),
    ),
    FallbackRule(
        name="prepare",
        keywords=("prepare", "preparation", "surgery"),
        template=(
            "Here are the key preparation steps for your surgery:\n\n"
            "1. Stop eating and drinking after midnight the night before\n"
            "2. Shower with antibacterial soap\n"
            "3. Remove all jewelry and nail polish\n"
            "4. Arrange transportation, since you cannot drive after surgery\n"
            "5. Pack comfortable clothes for afterwards\n\n"
            "Do you have any specific concerns about preparation?"
        ),
    ),
    FallbackRule(
        name="fasting",
        keywords=("eat", "food", "drink"),
        template=(
            "About food and drink before surgery:\n\n"
            "- Stop eating solid food after midnight\n"
            "- Clear liquids are allowed until 2 hours before arrival\n"
            "- Clear liquids include water, black coffee, clear tea and apple juice\n"
            "- Avoid milk, orange juice and anything with pulp\n\n"
            "Fasting is important for your safety during anesthesia."
        ),
    ),
    FallbackRule(
        name="arrival",
        keywords=("arrive", "arrival", "time"),
        template=(
            "Please plan to arrive 90 minutes before your scheduled surgery time and check in at surgical "
            "registration. Bring your ID, insurance card and an advance directive if you have one. "
            "Your care team will confirm the exact time with you."
        ),
    ),
    FallbackRule(
        name="exercise",
        keywords=("exercise", "therapy"),
        template=(
            "Great job focusing on your exercises! Move slowly, follow the routine your care team gave you, "
            "and stop if you feel sharp pain. Consistency is key to regaining strength and mobility."
        ),
    ),
    FallbackRule(
        name="tasks",
        keywords=("task",),
        template="You have {remaining_tasks} {task_word} remaining today. Let's work through them one at a time.",
    ),
    FallbackRule(
        name="default",
        keywords=(),
        template=(
            "I'm having trouble answering right now, but your message has been saved and your care team can "
            "see it. You can ask me about pain management, your exercises, preparing for surgery, or today's "
            "tasks. If this is urgent, please contact your care team directly."
        ),
    ),
)


def select_rule(text: str) -> FallbackRule:
    lowered = text.lower()
    for rule in FALLBACK_RULES:
        if rule.matches(lowered):
            return rule
    return FALLBACK_RULES[-1]


def fallback_reply(text: str, context: FallbackContext | None = None) -> str:
    """Pick a canned reply for the patient's message."""
    context = context or FallbackContext()
    rule = select_rule(text)
    day_phrase = f" on day {context.recovery_day} of recovery" if context.recovery_day else ""
    return rule.template.format(
        day_phrase=day_phrase,
        remaining_tasks=context.remaining_tasks,
        task_word="task" if context.remaining_tasks == 1 else "tasks",
    )
