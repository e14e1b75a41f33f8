"""
Tool usage guidance text.

Category-based usage tips for the tools offered in an exchange, and the
guide that separates the app's own note tools from external gateway
tools. Both come in English and Chinese.
"""
from typing import Iterable

_CATEGORY_KEYWORDS: tuple = (
    ("browser", ("navigate", "page", "click", "snapshot", "fill", "screenshot",
                 "browser", "scroll", "hover", "devtools", "chrome")),
    ("search", ("search", "query", "find")),
    ("file", ("file", "read", "write", "create", "delete", "directory")),
    ("database", ("database", "sql", "db", "table", "record")),
    ("network", ("fetch", "request", "api", "http", "get", "post")),
)

_TIPS = {
    "en": {
        "title": "Usage Tips",
        "files": "⚠️ Important: Use create_file/update_file for app files. External tools are for external operations only",
        "browser": "🌐 Browser: navigate_page first, then take_snapshot",
        "search": "🔍 Search: Query directly without opening pages",
    },
    "zh": {
        "title": "工具使用提示",
        "files": "⚠️ 重要: 创建/修改应用内文件请用 create_file/update_file，外部工具仅用于外部操作",
        "browser": "🌐 浏览器: 先 navigate_page 打开网址，再 take_snapshot 获取内容",
        "search": "🔍 搜索: 可直接搜索，无需先打开网页",
    },
}

_DISTINCTION_GUIDE = {
    "en": """---

**⚠️ Important: Tool Usage Rules**

You have THREE types of information:

1. **App Internal File Tools** (create_file, update_file, read_file, search_files, delete_file):
   - Only operate on internal note files within the app
   - Available files: User's Markdown notes
   - Use for: Creating/editing user notes

2. **External Tools** (navigate_page, take_snapshot, evaluate_script, etc.):
   - Operate on external browser, webpages, external filesystem
   - Completely isolated from app files
   - Use for: Web browsing, data scraping

3. **Knowledge Base Context**:
   - Retrieved knowledge is injected directly into the conversation
   - This information is **complete** and contains the needed knowledge
   - **DO NOT** use read_file/search_files to re-read already injected content
   - Reference the injected information directly if needed

**Rules**:
- Do NOT use read_file to read data obtained via external tools
- Do NOT use read_file to read already injected knowledge base context
- If you need to save scraped data, use create_file to create a new note
- External tool outputs are already in the conversation, no need to "read" again""",
    "zh": """---

**⚠️ 重要：工具使用规则**

你有三类不同的信息来源：

1. **应用内文件工具**（create_file, update_file, read_file, search_files, delete_file）：
   - 只能操作应用内部的笔记文件
   - 当前可用文件：用户的 Markdown 笔记
   - 用于：创建/编辑用户笔记

2. **外部工具**（navigate_page, take_snapshot, evaluate_script 等）：
   - 操作外部浏览器、网页、外部文件系统
   - 与应用内文件完全隔离
   - 用于：网页浏览、数据抓取

3. **知识库上下文**：
   - 检索到的知识会直接注入到对话中
   - 这些信息**已经完整**，包含了需要的知识
   - **不要**用 read_file/search_files 重复读取已注入的内容
   - 如果需要引用，直接使用注入的信息即可

**规则**：
- 不要尝试用 read_file 读取通过外部工具获取的数据
- 不要尝试用 read_file 读取已注入的知识库上下文
- 如果需要保存抓取的数据，使用 create_file 创建新笔记
- 外部工具的输出已经在对话中，不需要再次"读取\"""",
}


def _lang(language: str) -> str:
    return "zh" if language == "zh" else "en"


def categorize_tool(name: str) -> str:
    """
    Assign a tool to a coarse category by keywords in its name.

    Returns:
        One of browser, search, file, database, network, general
    """
    lowered = name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "general"


def usage_tips(tool_names: Iterable[str], language: str = "en") -> str:
    """
    Render category-based usage tips for a set of tools.

    Args:
        tool_names: Names of the tools offered
        language: "en" or "zh"

    Returns:
        A "**Usage Tips:**" block, or "" when there are no tools
    """
    names = [name for name in tool_names if name]
    if not names:
        return ""

    texts = _TIPS[_lang(language)]
    categories: dict[str, list[str]] = {}
    for name in names:
        categories.setdefault(categorize_tool(name), []).append(name)

    tips = [texts["files"]]
    browser = categories.get("browser", [])
    if any("navigate" in n for n in browser) and any("snapshot" in n for n in browser):
        tips.append(texts["browser"])
    if "search" in categories:
        tips.append(texts["search"])

    return f"**{texts['title']}:**\n" + "\n".join(tips)


def tool_distinction_guide(language: str = "en") -> str:
    return _DISTINCTION_GUIDE[_lang(language)]
