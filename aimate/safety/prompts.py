"""Message templates for the safety plugin.

Each template uses ``{placeholder}`` syntax for substitution via
``str.format()``.  The ``render_*`` helpers fill them from analysis and
resource objects.
"""

from __future__ import annotations

from aimate.safety.models import CrisisAnalysis, CrisisResources, HarmAnalysis

# ---------------------------------------------------------------------------
# Crisis intervention (replaces the model's reply)
# ---------------------------------------------------------------------------

CRISIS_INTERVENTION_TEMPLATE = """\
## Crisis Support

It sounds like you might be going through something really painful right now. \
**You are not alone, and help is available right now.**

### Immediate Support ({region})

**Call or text:**
{hotlines}
{web_chats}
**Emergency:**
- **{emergency}**: if you are in immediate danger, call emergency services
{region_note}
---

### Why I'm Showing You This

Your message contained words that suggest you might be thinking about harming \
yourself. Whether or not that's the case, I want you to know:

1. **Your feelings are real.** Whatever you're experiencing is valid.
2. **This is not your fault.** You deserve support, not judgment.
3. **Help exists.** Trained people are available around the clock.
4. **You matter.** Your life has value, even when it doesn't feel that way.

I'm here to listen if you want to keep talking, but **I'm not equipped to \
provide crisis support**. The people at the numbers above are trained for \
exactly this. Please consider reaching out to one of them first.

**You don't have to face this alone.**

---

*This message comes from aiMate's Mental Health Safety Monitor. If it was \
triggered in error, you can adjust sensitivity in Settings > Plugins > \
Mental Health Safety.*"""

REGION_FALLBACK_NOTE = """
*These are {region} services. Set your region in Settings > Plugins > \
Mental Health Safety to see local numbers.*
"""

# ---------------------------------------------------------------------------
# Safety preamble (prepended to the user's message for the model)
# ---------------------------------------------------------------------------

SAFETY_PREAMBLE_TEMPLATE = """\
[SAFETY GUIDANCE FOR AI]
- User shows signs of emotional distress
- Detected triggers: {triggers}
- Respond with genuine empathy and validation
- NEVER victim-blame or suggest responsibility for others' harmful actions
- NEVER minimize their experience
- NEVER gaslight or question their perception
- If they mention harm to self or others, prioritize crisis resources
- Use supportive language; avoid therapy-speak that could sound condescending"""

PREAMBLE_RESOURCES_TEMPLATE = """\
- Share these crisis contacts in your reply: {contacts}; emergency {emergency}"""

# ---------------------------------------------------------------------------
# Harmful reply replacement
# ---------------------------------------------------------------------------

HARM_BLOCK_TEMPLATE = """\
I'm sorry, I need to pause here.

The reply I was about to give contained patterns that could be harmful:
{patterns}

Let me try again with a more supportive approach.

Whatever you're experiencing is real and valid. If someone has harmed you, \
that's on them, not you. You didn't cause their behavior, and you're not \
responsible for their choices.

Would you like to talk about what's going on? I'm here to listen without \
judgment.

---

*This reply was replaced by aiMate's Mental Health Safety Monitor to prevent \
potential harm.*"""


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _hotline_lines(resources: CrisisResources) -> str:
    lines = []
    for h in resources.hotlines:
        extras = [h.available]
        if h.can_text:
            extras.append("call or text")
        lines.append(f"- **{h.number}** ({h.name}): {', '.join(extras)}")
    return "\n".join(lines)


def render_crisis_intervention(resources: CrisisResources, region_matched: bool = True) -> str:
    web_chats = ""
    if resources.web_chats:
        chats = "\n".join(f"- {url}" for url in resources.web_chats)
        web_chats = f"\n**Online chat:**\n{chats}\n"
    region_note = "" if region_matched else REGION_FALLBACK_NOTE.format(region=resources.region)
    return CRISIS_INTERVENTION_TEMPLATE.format(
        region=resources.region,
        hotlines=_hotline_lines(resources),
        web_chats=web_chats,
        emergency=resources.emergency,
        region_note=region_note,
    )


def render_safety_preamble(
    analysis: CrisisAnalysis, resources: CrisisResources | None = None
) -> str:
    preamble = SAFETY_PREAMBLE_TEMPLATE.format(triggers=", ".join(analysis.triggers))
    if resources is not None:
        contacts = "; ".join(f"{h.name} {h.number}" for h in resources.hotlines)
        preamble += "\n" + PREAMBLE_RESOURCES_TEMPLATE.format(
            contacts=contacts, emergency=resources.emergency
        )
    return preamble


def render_harm_block(analysis: HarmAnalysis) -> str:
    patterns = "\n".join(f"- {p}" for p in analysis.patterns)
    return HARM_BLOCK_TEMPLATE.format(patterns=patterns)
