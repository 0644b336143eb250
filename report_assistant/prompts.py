"""
Prompts module for the Report Assistant.

Contains the field-specific instructions used to synthesise reports and the
text-editing actions offered by the editor.
"""

# Instructions keyed by target field label
FIELD_INSTRUCTIONS = {
    '本月总结': '请基于以下日报内容，撰写本月工作总结，突出主要成就和完成的工作',
    '本月工作总结': '请基于以下日报内容，撰写本月工作总结，突出主要成就和完成的工作',
    '本周工作总结': '请基于以下日报内容，撰写本周工作总结，突出主要成就和完成的工作',
    '主要成就': '请从以下日报中提取并总结主要成就和亮点',
    '进展同步': '请基于以下日报，总结项目进展情况',
    '下月计划': '请基于以下日报中的计划内容，制定下月工作计划',
    '下月工作计划': '请基于以下日报中的计划内容，制定下月工作计划',
    '下周工作计划': '请基于以下日报中的计划内容，制定下周工作计划',
    '复盘总结': '请基于以下日报，进行工作复盘，分析经验教训',
    '遇到的挑战': '请从以下日报中提取遇到的问题和挑战',
    '团队反馈': '请基于以下日报，总结团队协作和反馈情况',
}

GENERIC_FIELD_INSTRUCTION = '请基于以下报告内容，为"{label}"生成合适的内容'

FIELD_REQUIREMENTS = """。要求：
1. 内容简洁明了，突出重点
2. 保持专业的工作报告语气
3. 如果是富文本字段，可以使用适当的HTML格式
4. 字数控制在100-300字之间

以下是源报告内容："""

MANUAL_ENTRY_PLACEHOLDER = '请手动填写 {label}'

REPORT_DIVIDER = '\n---\n'


def get_field_prompt(label: str) -> str:
    """
    Build the instruction for one target field.

    Args:
        label: Display label of the target template field

    Returns:
        The instruction, falling back to a generic one for unknown labels
    """
    instruction = FIELD_INSTRUCTIONS.get(label) or GENERIC_FIELD_INSTRUCTION.format(label=label)
    return f"{instruction}{FIELD_REQUIREMENTS}"


# Text-editing actions: name -> (prompt, description)
AI_PROMPTS = {
    '重构': (
        '请重新组织和改进以下文本的结构和表达，使其更加清晰、逻辑性更强：',
        '重新组织文本结构，提高逻辑性和可读性',
    ),
    '博客化': (
        '请将以下内容改写成适合博客发布的风格，要求有吸引力的标题、清晰的段落结构和引人入胜的表达：',
        '转换为博客风格，增加吸引力和可读性',
    ),
    '提取要点': ('请从以下文本中提取出主要要点，用简洁的条目列出：', '提取并列出文本的核心要点'),
    '改写': ('请用不同的表达方式重新表述以下内容，保持原意但改变用词和句式：', '保持原意的情况下重新表述内容'),
    '缩短': ('请将以下内容压缩成更简洁的版本，保留核心信息：', '压缩文本长度，保留核心信息'),
    '扩写': ('请展开以下内容，添加更多细节、例子或解释，使其更加丰富完整：', '增加细节和例子，丰富内容'),
    '总结': ('请对以下内容进行总结，突出主要观点和结论：', '总结主要观点和结论'),
    '简化': ('请将以下内容简化，使用更简单易懂的语言表达：', '使用简单易懂的语言重新表达'),
    '修正拼写': ('请检查并修正以下文本中的拼写、语法和标点错误：', '检查并修正语法、拼写和标点错误'),
    '继续写作': ('请基于以下内容继续写作，保持相同的风格和主题：', '基于现有内容继续写作'),
    '使用激动语气': ('请将以下内容改写成充满激情和活力的语调：', '转换为充满激情的语调'),
    '添加表情 🙂': ('请在以下文本中适当位置添加表情符号，使其更生动有趣：', '添加表情符号，增加趣味性'),
    '去除表情': ('请从以下文本中移除所有表情符号，保持正式的文本风格：', '移除表情符号，保持正式风格'),
    '翻译成瑞典语': ('Please translate the following text to Swedish:', '翻译为瑞典语'),
    '翻译成德语': ('Please translate the following text to German:', '翻译为德语'),
    '翻译成英文': ('Please translate the following text to English:', '翻译为英文'),
    '翻译成老挝语': ('Please translate the following text to Lao (Laotian):', '翻译为老挝语'),
    '翻译成中文': ('Please translate the following text to Chinese (Simplified):', '翻译为中文'),
    '一句话总结': ('请用一句话总结以下内容的核心观点：', '用一句话概括核心观点'),
}
