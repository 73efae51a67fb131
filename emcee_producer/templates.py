"""Expand layout segments into emcee narration with prosody markup.

Each segment type maps to a pure function in SEGMENT_TEMPLATES. Compound
types (keynote, panel, presentation, workshop) also get an intro and a
transition satellite; Q&A segments get three question/answer satellites.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from emcee_producer.constants import (
    COMPOUND_SEGMENT_TYPES,
    INTRO_SATELLITE_FRACTION,
    QA_PAIR_COUNT,
    QA_PAIR_FRACTION,
    QA_PAIR_SEGMENT_TYPE,
    QA_SEGMENT_TYPE,
    TRANSITION_SATELLITE_FRACTION,
)
from emcee_producer.models import LayoutSegment, ScriptSegment, round_half_up
from emcee_producer.timeline import time_after_minutes


@dataclass
class TemplateContext:
    name: str
    event_title: str
    event_type: str
    duration: int
    description: str = ""
    end_time: str | None = None
    now: datetime | None = None


SEGMENT_TEMPLATES: dict[str, Callable[[TemplateContext], str]] = {}


def register_template(segment_type: str):
    """Register a narration function for a segment type."""
    def decorator(func):
        SEGMENT_TEMPLATES[segment_type.lower()] = func
        return func
    return decorator


@register_template("introduction")
def _introduction(ctx: TemplateContext) -> str:
    return (
        f"Ladies and gentlemen, welcome to [EMPHASIS]{ctx.event_title}[/EMPHASIS]! [PAUSE=500] "
        f"I'm your AI host for today, and I'm delighted to guide you through this {ctx.event_type} "
        f"where we'll explore exciting ideas and foster meaningful connections. [PAUSE=300] "
        f"We have a packed agenda with valuable content planned for the next {ctx.duration} minutes."
    )


@register_template("keynote")
def _keynote(ctx: TemplateContext) -> str:
    return (
        "It's now my pleasure to introduce our keynote presentation. [PAUSE=400] "
        "Our distinguished speaker will share insights on industry trends and innovations "
        "that are shaping our future. [PAUSE=300] "
        "Please join me in welcoming our keynote speaker to the stage. [PAUSE=800]"
    )


@register_template("panel")
def _panel(ctx: TemplateContext) -> str:
    return (
        "We now move to our panel discussion featuring industry experts who will share "
        "their perspectives on current trends and challenges. [PAUSE=400] "
        "I'll be moderating this conversation and will open the floor for questions "
        f"in the latter part of this {ctx.duration}-minute session."
    )


@register_template("presentation")
def _presentation(ctx: TemplateContext) -> str:
    return (
        f"Let's now turn our attention to the main presentation of today's {ctx.event_type}. [PAUSE=300] "
        f"This {ctx.duration}-minute session will cover key insights and practical takeaways "
        "that you can implement immediately. [PAUSE=400] "
        "Please hold your questions until the Q&A session that follows."
    )


@register_template("q_and_a")
def _q_and_a(ctx: TemplateContext) -> str:
    return (
        f"We now have {ctx.duration} minutes for questions and answers. [PAUSE=300] "
        "If you have a question, please raise your hand or use the chat function, "
        "and I'll do my best to address as many questions as possible. [PAUSE=400] "
        "Let's begin with our first question."
    )


@register_template("break")
def _break(ctx: TemplateContext) -> str:
    back_by = ctx.end_time or time_after_minutes(ctx.duration, ctx.now)
    return (
        f"We'll now take a {ctx.duration}-minute break for refreshments and networking. [PAUSE=300] "
        f"Please be back in your seats by {back_by} so we can continue with our program. [PAUSE=400] "
        "Enjoy your break!"
    )


@register_template("agenda")
def _agenda(ctx: TemplateContext) -> str:
    return (
        "Let me walk you through today's agenda. [PAUSE=300] "
        "We have a comprehensive program planned for the next few hours, including presentations, "
        "discussions, and interactive sessions. [PAUSE=400] "
        f"Our event will conclude by {time_after_minutes(ctx.duration * 4, ctx.now)}."
    )


@register_template("conclusion")
def _conclusion(ctx: TemplateContext) -> str:
    return (
        f"As we come to the end of {ctx.event_title}, I want to thank you all for your active "
        "participation and engagement. [PAUSE=400] "
        "We hope you found value in today's proceedings and will apply the insights gained. [BREATHE] "
        "Thank you once again, and we look forward to seeing you at future events!"
    )


@register_template("demo")
def _demo(ctx: TemplateContext) -> str:
    return (
        "Now I'll demonstrate how our solution works in practice. [PAUSE=300] "
        f"This {ctx.duration}-minute demonstration will showcase the key features and benefits "
        "that make our offering unique. [PAUSE=400] "
        "Feel free to take notes, and there will be time for questions afterward."
    )


@register_template("action_items")
def _action_items(ctx: TemplateContext) -> str:
    return (
        "Let's review the action items from today's discussion. [PAUSE=300] "
        "I'll assign responsibilities and deadlines to ensure we make progress on these initiatives. [PAUSE=400] "
        "Please make note of any tasks assigned to you or your team."
    )


@register_template("main_content")
def _main_content(ctx: TemplateContext) -> str:
    return (
        f"Let's dive into the main content of our {ctx.event_type}. [PAUSE=300] "
        f"Over the next {ctx.duration} minutes, we'll explore key concepts and practical applications "
        "that are relevant to your work and interests. [PAUSE=400] "
        "I encourage you to engage actively with the material presented."
    )


def default_template(ctx: TemplateContext) -> str:
    return (
        f"Welcome to the {ctx.name} segment of our {ctx.event_type}. [PAUSE=300] "
        f"We have allocated {ctx.duration} minutes for this portion of the event. [PAUSE=400] "
        "Let's make the most of this time together."
    )


def render_primary(segment_type: str, ctx: TemplateContext) -> str:
    template = SEGMENT_TEMPLATES.get((segment_type or "").lower(), default_template)
    return template(ctx)


# Satellite narration, keyed by compound type; "" is the fallback.
INTRO_TEMPLATES = {
    "keynote": (
        "[PAUSE=500] It's now my pleasure to introduce our keynote speaker for {name}. [PAUSE=300] "
        "Our speaker today is a distinguished expert in the field and will be sharing valuable insights "
        "on topics central to {title}. [BREATHE] "
        "Please join me in welcoming our keynote speaker to the stage. [PAUSE=800]"
    ),
    "panel": (
        "[PAUSE=500] I'd like to welcome our esteemed panelists for the {name} discussion. [PAUSE=300] "
        "Each brings unique expertise and perspective to our conversation today. [BREATHE] "
        "I'll be moderating this discussion and guiding us through several key topics. [PAUSE=400] "
        "Let's begin by having each panelist briefly introduce themselves. [PAUSE=800]"
    ),
    "presentation": (
        "[PAUSE=500] Next on our agenda is a presentation on {name}. [PAUSE=300] "
        "This presentation will cover key aspects that are fundamental to understanding "
        "the broader context of our event. [BREATHE] "
        "Please direct your attention to the screen as we begin. [PAUSE=400]"
    ),
    "workshop": (
        "[PAUSE=500] Welcome to our workshop session on {name}. [PAUSE=300] "
        "During this interactive segment, we'll be exploring practical applications and hands-on techniques. [BREATHE] "
        "I encourage everyone to actively participate and ask questions throughout. [PAUSE=400] "
        "Let's start by outlining our objectives for this workshop. [PAUSE=300]"
    ),
    "": (
        "[PAUSE=500] Let me introduce the next segment of our program: {name}. [PAUSE=300] "
        "This is an important part of our event where we'll focus on key information and insights. [BREATHE] "
        "I'm looking forward to guiding you through this section. [PAUSE=400]"
    ),
}

TRANSITION_TEMPLATES = {
    "keynote": (
        "[PAUSE=500] Thank you for that insightful keynote presentation. [PAUSE=300] "
        "The perspectives shared will certainly give us much to think about as we continue with our event. [BREATHE] "
        "Let's show our appreciation once more with a round of applause. [PAUSE=800]"
    ),
    "panel": (
        "[PAUSE=500] That concludes our panel discussion on {name}. [PAUSE=300] "
        "I'd like to thank all of our panelists for their valuable contributions and insights. [BREATHE] "
        "The diverse perspectives shared today have enriched our understanding of the topic. [PAUSE=400]"
    ),
    "presentation": (
        "[PAUSE=500] That brings us to the end of the presentation on {name}. [PAUSE=300] "
        "I hope you found the information valuable and applicable to your work. [BREATHE] "
        "We'll now transition to our next segment. [PAUSE=400]"
    ),
    "workshop": (
        "[PAUSE=500] We've now completed the workshop on {name}. [PAUSE=300] "
        "Thank you all for your active participation and engagement. [BREATHE] "
        "The skills practiced here today should serve you well in your future endeavors. [PAUSE=400]"
    ),
    "": (
        "[PAUSE=500] That concludes our {name} segment. [PAUSE=300] "
        "Thank you for your attention and engagement. [BREATHE] "
        "We'll now move on to the next part of our program. [PAUSE=400]"
    ),
}

# Position 1..3 → (question, answer). There is no fourth entry.
QA_BANK = (
    (
        "What are the key takeaways from today's {event_type}?",
        "That's an excellent question. [PAUSE=300] The main takeaways from today's event include "
        "a deeper understanding of the core concepts we've discussed, practical strategies that you "
        "can implement immediately, and new perspectives on challenges in the field. [BREATHE] "
        "Additionally, the networking opportunities and connections made today should prove valuable "
        "for future collaboration.",
    ),
    (
        "How can we apply these concepts in a real-world setting?",
        "Applying these concepts in the real world involves several steps. [PAUSE=300] First, identify "
        "specific areas in your work where these principles are most relevant. [PAUSE=200] Second, start "
        "with small implementations to test effectiveness. [BREATHE] Third, gather feedback and iterate "
        "on your approach. [PAUSE=300] Many of our participants have found success by forming "
        "implementation teams to support each other through the process.",
    ),
    (
        "What resources do you recommend for further learning on this topic?",
        "For those interested in exploring this topic further, I recommend several resources. [PAUSE=300] "
        "There are excellent books by industry experts that dive deeper into the concepts we've covered "
        "today. [PAUSE=200] Additionally, there are online courses, webinars, and community forums where "
        "practitioners share their experiences. [BREATHE] We'll be sending a follow-up email with links "
        "to these resources, so you'll have them for reference.",
    ),
)


def speaker_introduction(segment_type: str, name: str, event_title: str) -> str:
    template = INTRO_TEMPLATES.get(segment_type.lower(), INTRO_TEMPLATES[""])
    return template.format(name=name, title=event_title)


def transition(segment_type: str, name: str) -> str:
    template = TRANSITION_TEMPLATES.get(segment_type.lower(), TRANSITION_TEMPLATES[""])
    return template.format(name=name)


def qa_pair(event_type: str, position: int) -> str:
    """Narration for Q&A pair 1, 2 or 3."""
    question, answer = QA_BANK[position - 1]
    question = question.format(event_type=event_type)
    return (
        f"[EMPHASIS]Question {position}:[/EMPHASIS] [PAUSE=300] \"{question}\" [PAUSE=500] [BREATHE] "
        f"Answer: [PAUSE=300] {answer} [PAUSE=800]"
    )


def expand(
    layout_segment: LayoutSegment,
    event_title: str,
    event_type: str,
    event_id: int = 0,
    now: datetime | None = None,
) -> list[ScriptSegment]:
    """Draft script segments for one layout segment, primary first."""
    kind = (layout_segment.type or "").lower()
    duration = layout_segment.duration
    ctx = TemplateContext(
        name=layout_segment.name,
        event_title=event_title,
        event_type=event_type,
        duration=duration,
        description=layout_segment.description,
        end_time=layout_segment.end_time,
        now=now,
    )

    def draft(segment_type, content, timing, sub_order):
        return ScriptSegment(
            event_id=event_id,
            layout_segment_id=layout_segment.id,
            segment_type=segment_type,
            content=content,
            timing=timing,
            layout_order=layout_segment.order,
            sub_order=sub_order,
        )

    drafts = [draft(layout_segment.type, render_primary(kind, ctx), duration * 60, 0)]

    if kind in COMPOUND_SEGMENT_TYPES:
        drafts.append(draft(
            f"{kind}_intro",
            speaker_introduction(kind, layout_segment.name, event_title),
            round_half_up(duration * INTRO_SATELLITE_FRACTION) * 60,
            1,
        ))
        drafts.append(draft(
            f"{kind}_transition",
            transition(kind, layout_segment.name),
            round_half_up(duration * TRANSITION_SATELLITE_FRACTION) * 60,
            2,
        ))
    elif kind == QA_SEGMENT_TYPE:
        pair_timing = round_half_up(duration * QA_PAIR_FRACTION) * 60
        for position in range(1, QA_PAIR_COUNT + 1):
            drafts.append(draft(QA_PAIR_SEGMENT_TYPE, qa_pair(event_type, position), pair_timing, position))

    return drafts
