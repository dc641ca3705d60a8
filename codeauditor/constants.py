"""Constants and default values for Code Auditor."""

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_OUTPUT_TOKENS = 8192

# Backend defaults
DEFAULT_TIMEOUT = 120  # seconds
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 2.0  # seconds, multiplied by the attempt number

# Agent loop budgets
DEFAULT_MAX_ROUNDS = 50
DEFAULT_MAX_TOOL_CALLS = 200

# Working tree and tool result limits
DEFAULT_MAX_FILES = 100
DEFAULT_MAX_FILE_SIZE_KB = 1024
DEFAULT_MAX_READ_BYTES = 64 * 1024
DEFAULT_MAX_SEARCH_RESULTS = 50
MAX_MATCH_LINE_CHARS = 300

# Output
DEFAULT_OUTPUT_PATH = "code_audit_report.md"
DEFAULT_OUTPUT_FORMAT = "markdown"
OUTPUT_FORMATS = ("markdown", "json")

# Config and ignore files
CONFIG_FILENAME = ".code-auditor.json"
IGNORE_FILENAME = ".codeauditorignore"

# Source extensions analyzed when no allowlist is configured
DEFAULT_EXTENSIONS = (
    "rs", "py", "js", "ts", "jsx", "tsx", "go", "java", "c", "cpp", "h", "hpp",
    "cs", "rb", "php", "swift", "kt", "scala", "vue", "svelte",
)

# Built-in ignore patterns
BUILTIN_IGNORES = [
    # Version control and project metadata
    ".git/",
    ".hg/",
    ".svn/",

    # Code Auditor internal
    ".code-auditor/",

    # Python
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    "*.pyd",
    "*.egg-info/",
    ".pytest_cache/",
    ".mypy_cache/",
    ".ruff_cache/",
    ".tox/",

    # Virtual environments
    "venv/",
    ".venv/",
    "env/",

    # Build artifacts and vendored code
    "target/",
    "dist/",
    "build/",
    "vendor/",
    "*.so",
    "*.dylib",
    "*.dll",

    # JavaScript/Node
    "node_modules/",
    "*.min.js",
    "*.min.css",

    # Lock files
    "package-lock.json",
    "yarn.lock",
    "Cargo.lock",
    "poetry.lock",

    # IDE and editor files
    ".DS_Store",
    "*.swp",
    ".vscode/",
    ".idea/",

    # Secrets
    ".env",
    ".env.*",
    "*.pem",
    "id_rsa*",
]

# Language detection by extension
LANGUAGE_MAP = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".vue": "vue",
    ".svelte": "svelte",
    ".sh": "shell",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
}

# Severity and category vocabulary, highest severity first
SEVERITIES = ("critical", "high", "medium", "low", "info")
CATEGORIES = ("security", "bug", "performance", "style")

SEVERITY_ICONS = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
    "info": "🔵",
}

SEVERITY_ALIASES = {
    "crit": "critical",
    "blocker": "critical",
    "severe": "high",
    "major": "high",
    "error": "high",
    "moderate": "medium",
    "med": "medium",
    "warning": "medium",
    "minor": "low",
    "trivial": "low",
    "informational": "info",
    "note": "info",
}

CATEGORY_ALIASES = {
    "vulnerability": "security",
    "correctness": "bug",
    "logic": "bug",
    "error_handling": "bug",
    "perf": "performance",
    "efficiency": "performance",
    "quality": "style",
    "code_quality": "style",
    "maintainability": "style",
    "readability": "style",
}

# Model descriptors - Anthropic Claude models
SUPPORTED_MODELS = {
    # Claude Sonnet 4.5 - best balance for code review with tools
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": 8192,
    },
    # Claude Haiku 4.5 - fast and cost-effective
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": 8192,
    },
    # Claude Opus 4.1 - most capable for complex reasoning
    "anthropic:claude-opus-4-1": {
        "provider": "anthropic",
        "name": "claude-opus-4-1-20250805",
        "max_output_tokens": 8192,
    },
}
