"""
LLM Prompts and Output Schemas
==============================

System prompts and strict JSON schemas for the three remote operations:
profile extraction, relevance filtering and rate-sheet OCR.
"""

from typing import Any

# =============================================================================
# Extraction
# =============================================================================

EXTRACT_JSON_SCHEMA: dict[str, Any] = {
    "name": "extracted_profiles_response",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "profiles": {
                "type": "array",
                "description": "A list of extracted user profiles",
                "items": {
                    "type": "object",
                    "properties": {
                        "username": {"type": "string", "description": "账号的名称/用户名"},
                        "douyinId": {
                            "type": "string",
                            "description": "抖音号/唯一ID. 如果未找到，请返回空字符串",
                        },
                        "fans": {
                            "type": "string",
                            "description": "粉丝数量，保留原始单位如'1.5w'. 如果未找到，请返回空字符串",
                        },
                        "bio": {
                            "type": "string",
                            "description": "个人简介全文. 如果未找到，请返回空字符串",
                        },
                        "contact": {
                            "type": "string",
                            "description": "提取到的手机/微信/邮箱. 如果未找到，请返回空字符串",
                        },
                    },
                    "required": ["username", "douyinId", "fans", "bio", "contact"],
                    "additionalProperties": False,
                },
            }
        },
        "required": ["profiles"],
        "additionalProperties": False,
    },
}

SYSTEM_PROMPT_EXTRACT = """
你是一个专业的数据清洗助手。你的任务是从用户提供的非结构化文本中提取抖音/TikTok账号信息。

【目标输出格式示例】
请严格按照以下 JSON 格式输出，不要包含任何其他文字：
{
  "profiles": [
    {
      "username": "示例用户A",
      "douyinId": "dy123456",
      "fans": "10.5w",
      "bio": "专注欧美物流",
      "contact": "13800138000"
    }
  ]
}

【严格规则】
1. 直接返回 JSON 对象，不要使用 Markdown 代码块。
2. 如果未提取到数据，返回 { "profiles": [] }。
3. 文本是长文本中的一个片段：开头或结尾处不完整的账号记录请直接忽略，不要猜测补全。
""".strip()

# =============================================================================
# Relevance filtering
# =============================================================================

FILTER_JSON_SCHEMA: dict[str, Any] = {
    "name": "filtered_ids_response",
    "strict": True,
    "schema": {
        "type": "object",
        "properties": {
            "ids_to_remove": {
                "type": "array",
                "description": "List of IDs belonging to irrelevant profiles that should be removed",
                "items": {"type": "number", "description": "The numeric ID of the profile"},
            }
        },
        "required": ["ids_to_remove"],
        "additionalProperties": False,
    },
}

SYSTEM_PROMPT_FILTER = """
你是一个国际物流行业的数据分析师。请分析提供的账号列表，进行相关性清洗。
目标：找出所有与“国际物流、跨境贸易、货代”【无关】的账号ID。

【判定标准】
- 保留（相关）：空运、海运、快递、物流、货代、双清包税、空派、海派、集运、海外仓、跨境电商供应链、外贸。
- 删除（无关）：纯娱乐、生活分享、甚至修车/餐饮等本地服务、纯粹的博览会推广（除非明确是物流展）、卖衣服/百货直播号。

【目标输出格式示例】
请严格按照以下 JSON 格式输出，只包含需要删除的 ID 列表：
{
  "ids_to_remove": [ 101, 102, 505 ]
}
""".strip()

# =============================================================================
# Rate-sheet OCR
# =============================================================================

SYSTEM_PROMPT_RATE_SHEET = """
你是一个OCR和数据结构化专家。请分析这张空运价格表的图片。
目标：提取所有目的港及其对应的重量等级价格。

规则：
1. 目的港列如果包含多个代码（如 "AER/ASF/BAX..."），请拆分为 JSON 数组。
2. 提取以下列的价格："+45" mapped to "P45", "+100" mapped to "P100", "+300" mapped to "P300", "+500" mapped to "P500", "+1000" mapped to "P1000".
3. 如果没有对应列，忽略该字段。
4. 忽略 M 和 -45 的价格。
5. 返回纯净的 JSON 格式，不要 Markdown 标记。

JSON 结构示例：
[
  { "ports": ["SVO"], "prices": { "P45": 70, "P100": 45, "P300": 43, "P500": 41, "P1000": 39 } },
  { "ports": ["AER", "ASF"], "prices": { "P45": 100 } }
]
""".strip()


def json_schema_format(schema: dict[str, Any]) -> dict[str, Any]:
    """Wrap a named schema as a chat-completions ``response_format``."""
    return {"type": "json_schema", "json_schema": schema}
