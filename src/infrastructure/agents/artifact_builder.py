"""Artifact assembly - manifests, README and .env.example around the main file."""

import json
import re

from src.domain.entities.artifact import ArtifactMetadata, GeneratedArtifact, TargetLanguage
from src.domain.entities.clarification import RequiredEnvVar
from src.domain.entities.tools import ToolRecommendation
from src.domain.services.env_vars import render_env_example

MCP_TS_SDK_VERSION = "^1.0.0"
MCP_PY_SDK_VERSION = ">=1.2"


def server_name_for(text: str, fallback: str = "mcp-server") -> str:
    """Kebab-case package name derived from the request subject."""
    words = re.findall(r"[a-z0-9]+", text.lower())[:4]
    name = "-".join(words)
    if not name:
        return fallback
    return name if "mcp" in words else f"{name}-mcp"


def _package_json(name: str, description: str) -> str:
    manifest = {
        "name": name,
        "version": "0.1.0",
        "description": description,
        "type": "module",
        "main": "dist/index.js",
        "bin": {name: "dist/index.js"},
        "scripts": {"build": "tsc", "start": "node dist/index.js"},
        "dependencies": {"@modelcontextprotocol/sdk": MCP_TS_SDK_VERSION, "zod": "^3.23.0"},
        "devDependencies": {"typescript": "^5.4.0", "@types/node": "^20.0.0"},
    }
    return json.dumps(manifest, indent=2) + "\n"


def _tsconfig() -> str:
    config = {
        "compilerOptions": {
            "target": "ES2022",
            "module": "Node16",
            "moduleResolution": "Node16",
            "outDir": "dist",
            "rootDir": "src",
            "strict": True,
            "esModuleInterop": True,
            "skipLibCheck": True,
        },
        "include": ["src/**/*"],
    }
    return json.dumps(config, indent=2) + "\n"


def _pyproject(name: str, description: str) -> str:
    return (
        "[build-system]\n"
        'requires = ["setuptools>=68"]\n'
        'build-backend = "setuptools.build_meta"\n\n'
        "[project]\n"
        f'name = "{name}"\n'
        'version = "0.1.0"\n'
        f"description = {json.dumps(description)}\n"
        'requires-python = ">=3.11"\n'
        f'dependencies = ["mcp{MCP_PY_SDK_VERSION}", "httpx>=0.27"]\n\n'
        "[tool.setuptools]\n"
        'py-modules = ["server"]\n'
    )


def _readme(
    name: str,
    description: str,
    tools: list[ToolRecommendation],
    language: TargetLanguage,
    env_vars: list[RequiredEnvVar],
) -> str:
    lines = [f"# {name}", "", description, "", "## Tools", ""]
    for tool in tools:
        lines.append(f"- `{tool.name}`: {tool.description or 'No description'}")
    if env_vars:
        lines += ["", "## Configuration", "", "Copy `.env.example` to `.env` and set:", ""]
        lines += [f"- `{v.name}`: {v.description}" for v in env_vars]
    lines += ["", "## Running", ""]
    if language == TargetLanguage.PYTHON:
        lines += ["```bash", "pip install .", "python server.py", "```"]
    else:
        lines += ["```bash", "npm install", "npm run build", "npm start", "```"]
    return "\n".join(lines) + "\n"


def build_artifact(
    main_file: str,
    server_name: str,
    tools: list[ToolRecommendation],
    language: TargetLanguage,
    env_vars: list[RequiredEnvVar] | None = None,
    description: str = "",
) -> GeneratedArtifact:
    """First-iteration artifact around a freshly generated main file."""
    env_vars = env_vars or []
    description = description or f"MCP server exposing {len(tools)} tools"
    if language == TargetLanguage.PYTHON:
        manifests = {"pyproject.toml": _pyproject(server_name, description)}
    else:
        manifests = {
            "package.json": _package_json(server_name, description),
            "tsconfig.json": _tsconfig(),
        }
    supporting = {
        "README.md": _readme(server_name, description, tools, language, env_vars),
        ".env.example": render_env_example(env_vars),
    }
    return GeneratedArtifact(
        main_file=main_file,
        manifest_files=manifests,
        supporting_files=supporting,
        metadata=ArtifactMetadata(
            server_name=server_name,
            tools=tuple(tools),
            iteration=1,
            language=language,
        ),
    )
