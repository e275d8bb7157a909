"""Tests for the style assistant."""

from __future__ import annotations

import json
from typing import Any

import pytest
import pytest_mock

from chromacloset.api.ai_client import AIServiceClient, AIServiceError
from chromacloset.models import StylePersona, WardrobeGap
from chromacloset.stylist.prompts import chat_system_instruction, outfit_messages
from chromacloset.stylist.service import StylistService, StylistUnavailable


def _reply(content: Any) -> dict[str, Any]:
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def client(mocker: pytest_mock.MockerFixture):
    client = mocker.Mock(spec=AIServiceClient)
    client.chat_completion = mocker.AsyncMock()
    return client


@pytest.mark.asyncio
async def test_outfits_need_two_items(client, make_item) -> None:
    service = StylistService(client)

    assert await service.generate_outfits([make_item()], "Office", StylePersona.MINIMALIST) == []
    client.chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_outfits_only_reference_known_items(client, make_item) -> None:
    shirt, trousers = make_item(), make_item()
    client.chat_completion.return_value = _reply(
        {
            "outfits": [
                {
                    "id": "o1",
                    "title": "Soft tailoring",
                    "description": "Relaxed but sharp.",
                    "stylistTip": "Navy and ivory keep contrast gentle.",
                    "itemIds": [shirt.id, "ghost", trousers.id],
                    "styleVibe": "Quiet",
                },
                {"id": "o2", "title": "Phantom", "itemIds": ["ghost"]},
                "not an outfit",
            ],
        },
    )
    service = StylistService(client)

    outfits = await service.generate_outfits([shirt, trousers], "Office", StylePersona.QUIET_LUXURY, "rainy")

    assert [outfit.id for outfit in outfits] == ["o1"]
    assert outfits[0].item_ids == [shirt.id, trousers.id]
    assert outfits[0].occasion == "Office"
    assert outfits[0].stylist_tip.startswith("Navy")
    sent = client.chat_completion.await_args.args[0]
    assert "rainy" in sent[1]["content"]
    assert "Quiet Luxury" in sent[0]["content"]


@pytest.mark.asyncio
async def test_malformed_outfit_reply_gives_nothing(client, make_item) -> None:
    client.chat_completion.return_value = _reply("Here are some ideas: wear blue.")

    outfits = await StylistService(client).generate_outfits([make_item(), make_item()], "Date", StylePersona.BOHEMIAN)

    assert outfits == []


@pytest.mark.asyncio
async def test_service_outage_raises(client, make_item) -> None:
    client.chat_completion.side_effect = AIServiceError("down", status_code=503)

    with pytest.raises(StylistUnavailable):
        await StylistService(client).generate_outfits([make_item(), make_item()], "Date", StylePersona.BOHEMIAN)


@pytest.mark.asyncio
async def test_gap_analysis(client, make_item) -> None:
    service = StylistService(client)
    assert await service.analyze_gaps([]) == []

    client.chat_completion.return_value = _reply(
        {
            "gaps": [
                {"itemType": "Trench coat", "suggestedColor": "Camel", "reasoning": "Layers over everything.", "priority": "HIGH"},
                {"itemType": "Loafers", "suggestedColor": "Black", "priority": "urgent"},
                {"reasoning": "missing fields"},
                {"itemType": "Tee", "suggestedColor": "White", "priority": "low"},
                {"itemType": "Belt", "suggestedColor": "Brown"},
            ],
        },
    )

    gaps = await service.analyze_gaps([make_item()])

    assert [gap.item_type for gap in gaps] == ["Trench coat", "Loafers", "Tee"]
    assert [gap.priority for gap in gaps] == ["high", "medium", "low"]


@pytest.mark.asyncio
async def test_gap_search_collects_sources(client) -> None:
    client.chat_completion.return_value = _reply(
        "Try https://www.uniqlo.com/coat and https://everlane.com/trench. Also https://www.uniqlo.com/coat.",
    )

    result = await StylistService(client).search_gap_items(WardrobeGap("Trench coat", "Camel", "Layering"))

    assert result.text.startswith("Try")
    assert result.sources == ["https://www.uniqlo.com/coat", "https://everlane.com/trench"]


@pytest.mark.asyncio
async def test_chat_keeps_history(client, make_item) -> None:
    client.chat_completion.side_effect = [_reply("Pair it with ivory."), _reply("Loafers work.")]
    chat = StylistService(client).start_chat([make_item()], StylePersona.STREETWEAR)

    assert await chat.send("   ") is None
    first = await chat.send("What goes with navy?")
    await chat.send("Shoes?")

    assert first.text == "Pair it with ivory."
    assert [message.role for message in chat.history] == ["user", "model", "user", "model"]
    messages = client.chat_completion.await_args.args[0]
    assert messages[0]["role"] == "system"
    assert "Streetwear" in messages[0]["content"]
    assert [message["role"] for message in messages[1:]] == ["user", "assistant", "user"]


@pytest.mark.asyncio
async def test_chat_outage_raises(client, make_item) -> None:
    client.chat_completion.side_effect = AIServiceError("timeout")
    chat = StylistService(client).start_chat([make_item()], StylePersona.MINIMALIST)

    with pytest.raises(StylistUnavailable):
        await chat.send("Hello")
    assert chat.history == []


@pytest.mark.asyncio
async def test_chat_retry_after_outage_alternates_turns(client, make_item) -> None:
    client.chat_completion.side_effect = [AIServiceError("timeout"), _reply("Try a camel coat.")]
    chat = StylistService(client).start_chat([make_item()], StylePersona.MINIMALIST)

    with pytest.raises(StylistUnavailable):
        await chat.send("Hello")
    reply = await chat.send("Hello again")

    assert reply.text == "Try a camel coat."
    messages = client.chat_completion.await_args.args[0]
    assert [message["role"] for message in messages[1:]] == ["user"]
    assert [message.role for message in chat.history] == ["user", "model"]


def test_prompts_mention_inventory(make_item) -> None:
    item = make_item(color_name="Emerald", subcategory="blazer")

    messages = outfit_messages([item], "Gala", StylePersona.BOLD_ECLECTIC)

    assert item.id in messages[1]["content"]
    assert "Bold & Eclectic" in messages[0]["content"]
    assert "Emerald blazer" in chat_system_instruction([item], StylePersona.BOLD_ECLECTIC)
