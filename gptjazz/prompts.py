from __future__ import annotations

from typing import NamedTuple

from .gpt_string import GPTString
from .providers.litellm import LiteLLMClient
from .settings import Settings
from .tag import Tag, gpt

_EXAMPLE_PASSAGE = """X:1
T:Jazz Melody in the style of Miles Davis
C:Miles Davis Style
M:4/4
L:1/8
K:Cmaj
|:"Dm7" A4 G2 F2 | "G7" E4 D2 C2 | "Cmaj7" C6 B,2 | "Cmaj7" C8 |
| "Dm7" A4 G2 F2 | "G7" E4 D2 C2 | "Cmaj7" C6 B,2 | "Cmaj7" C8 :|"""

_EXAMPLE_CONTINUATION = """X:1
T:Jazz Melody in the Style of Miles Davis
C:Miles Davis Style
M:4/4
L:1/8
K:Cmaj
| "Em7" G4 A2 B2 | "A7" C4 B2 A2 | "Dm7" F6 E2 | "Dm7" F8 |
| "Em7" G4 F2 E2 | "A7" C4 D2 E2 | "Dm7" F6 E2 | "Dm7" F8 :|"""

ABC_SYSTEM_PROMPT = f"""You are an abc music generator. Given a style of music, respond with ABC music notation. Do not provide any explanation or any other information. For example:
Request:
###
genre: jazz
###

Response:
{_EXAMPLE_PASSAGE}"""

CONTINUATION_SYSTEM_PROMPT = f"""You are an abc music generator. Given this previous set of music, you should respond by continuing the passage also in abc music notation. Do not provide any explanation or any other information. You should aim to progress the music. It should become more fun and exciting but stay within the same style. Do not duplicate the previous passage as this new passage will be played in sequence after the previous passage.

For example:
Request:
###
genre: jazz
previous passage:
Response:
{_EXAMPLE_PASSAGE}
###

Response:
{_EXAMPLE_CONTINUATION}"""


class Generators(NamedTuple):
    abc: Tag
    continuation: Tag


def build_generators(settings: Settings | None = None, base: Tag | None = None) -> Generators:
    """Streaming tags for a first passage and for continuing a previous one."""
    settings = settings or Settings()
    if base is None:
        base = gpt.with_client(
            LiteLLMClient(api_key=settings.api_key, organization=settings.organization)
        )
    tag = base.model(settings.model).stream(True)
    if settings.temperature is not None:
        tag = tag.temperature(settings.temperature)
    if settings.debug:
        tag = tag.debug(True)
    return Generators(
        abc=tag.id("abc").add_message({"role": "system", "content": ABC_SYSTEM_PROMPT}),
        continuation=tag.id("continuation").add_message(
            {"role": "system", "content": CONTINUATION_SYSTEM_PROMPT}
        ),
    )


def passage_prompt(generators: Generators, style: str, previous: str | None = None) -> GPTString:
    if previous:
        return generators.continuation.template(
            "Request:###genre: {style}\nPrevious passage:{previous}###\nResponse:",
            style=style,
            previous=previous,
        )
    return generators.abc.template("Request:###genre: {style}###\nResponse:", style=style)


async def close_generators(generators: Generators) -> None:
    """Release the completion clients behind ``generators``, each once."""
    clients = {id(tag.client): tag.client for tag in generators}
    for client in clients.values():
        close = getattr(client, "aclose", None)
        if close is not None:
            await close()
