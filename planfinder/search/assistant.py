"""
Conversational plan assistant.
Builds the plan context handed to the chat model and picks out the plans the
model recommended in its reply. The chat completion itself is injected.
"""

import json
from typing import Dict, List, Any, Awaitable, Callable, Optional, Sequence
from dataclasses import dataclass, field
from loguru import logger


CONTEXT_FIELDS = ("id", "title", "layout", "floors", "totalArea", "direction", "siteArea", "features")

SYSTEM_PROMPT_TEMPLATE = """あなたは住宅プラン検索のAIアシスタントです。
ユーザーの要望を聞いて、登録されているプランの中から最適なものを提案してください。

現在登録されているプラン:
{plans}

以下のガイドラインに従ってください:
1. ユーザーの要望を丁寧に聞き、条件に合うプランを提案する
2. プランIDと一緒に、なぜそのプランがおすすめなのか理由を説明する
3. 複数のプランが該当する場合は、比較しながら提案する
4. 該当するプランがない場合は、近い条件のプランを提案する
5. 「-」や「不明」となっている項目は、情報が登録されていないことを意味する
6. プランIDを提示する際は、「プランID: xxx」のように明確に示す"""

# await complete(system_prompt, messages) -> reply text
CompletionFn = Callable[[str, List[Dict[str, str]]], Awaitable[str]]


@dataclass
class AssistantReply:
    message: str
    suggested_plans: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "suggestedPlans": list(self.suggested_plans)}


def plans_context(plans: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reduce plan records to the fields the model needs."""
    return [{key: plan.get(key) for key in CONTEXT_FIELDS} for plan in plans]


def build_system_prompt(plans: Sequence[Dict[str, Any]]) -> str:
    plans_json = json.dumps(plans_context(plans), ensure_ascii=False, indent=2)
    return SYSTEM_PROMPT_TEMPLATE.format(plans=plans_json)


def extract_plan_ids(message: str, plans: Sequence[Dict[str, Any]]) -> List[str]:
    """Return ids of plans mentioned in the reply, in collection order."""
    return [plan["id"] for plan in plans if plan.get("id") and plan["id"] in message]


class PlanAssistant:
    """Answers free-text plan requests using an injected async chat completion."""

    def __init__(self, complete: CompletionFn):
        self.complete = complete

    async def ask(self, message: str, plans: Sequence[Dict[str, Any]],
            history: Optional[List[Dict[str, str]]] = None) -> AssistantReply:
        """
        Ask the assistant about the given plans.

        Args:
            message: User message
            plans: Plan records visible to the caller
            history: Earlier turns as {"role", "content"} dicts

        Returns:
            AssistantReply with the model text and the plan ids it mentioned
        """
        if not message or not message.strip():
            raise ValueError("message is required")

        messages = list(history or []) + [{"role": "user", "content": message}]
        reply = await self.complete(build_system_prompt(plans), messages)

        suggested = extract_plan_ids(reply, plans)
        logger.info(f"Assistant replied with {len(suggested)} suggested plans")
        return AssistantReply(message=reply, suggested_plans=suggested)
