import json

import pytest
from pydantic import ValidationError

from config import AgentLoader, DeepStateSettings
from config.schema import BackendConfig, CheckpointConfig


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


def test_system_defaults(home):
    settings = AgentLoader(home=home).load()

    assert settings.model == "anthropic/claude-sonnet-4-5-20250929"
    assert settings.max_steps == 100
    assert settings.eviction.token_limit == 20000
    assert settings.summarization.keep_messages == 6
    assert settings.checkpoint.saver == "memory"
    assert settings.backend.kind == "state"
    assert settings.workspace_root is None


def test_three_tier_merge_and_cli_overrides(home, workspace):
    _write_json(home / ".deepstate" / "runtime.json", {"max_steps": 40, "eviction": {"token_limit": 5000}})
    _write_json(
        workspace / ".deepstate" / "runtime.json",
        {"eviction": {"enabled": False}, "summarization": {"keep_messages": 10}},
    )

    settings = AgentLoader(workspace_root=workspace, home=home).load({"max_steps": 7, "summarization": {"keep_messages": None}})

    assert settings.max_steps == 7
    assert settings.eviction.token_limit == 5000
    assert settings.eviction.enabled is False
    assert settings.summarization.keep_messages == 10
    assert settings.summarization.token_threshold == 170000
    assert settings.workspace_root == str(workspace.resolve())


def test_env_vars_and_home_expanded(home, workspace, monkeypatch):
    monkeypatch.setenv("DEEPSTATE_TEST_DIR", str(workspace / "ckpt"))
    _write_json(workspace / ".deepstate" / "runtime.json", {"checkpoint": {"saver": "file", "directory": "${DEEPSTATE_TEST_DIR}"}})

    settings = AgentLoader(workspace_root=workspace, home=home).load()

    assert settings.checkpoint.directory == str(workspace / "ckpt")


def test_unreadable_project_config_is_ignored(home, workspace):
    path = workspace / ".deepstate" / "runtime.json"
    path.parent.mkdir()
    path.write_text("{broken", encoding="utf-8")

    assert AgentLoader(workspace_root=workspace, home=home).load().max_steps == 100


def test_file_saver_requires_directory():
    with pytest.raises(ValidationError, match="checkpoint.directory"):
        CheckpointConfig(saver="file")


def test_route_prefix_must_be_absolute_and_not_root():
    assert "/memories/" in BackendConfig(routes={"/memories/": {"namespace": "mem"}}).routes

    with pytest.raises(ValidationError):
        BackendConfig(routes={"memories/": {}})
    with pytest.raises(ValidationError):
        BackendConfig(routes={"/": {}})


def test_missing_workspace_rejected(tmp_path):
    with pytest.raises(ValidationError, match="does not exist"):
        DeepStateSettings(workspace_root=str(tmp_path / "nope"))


def _agent_file(directory, name, body):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.md"
    path.write_text(body, encoding="utf-8")
    return path


def test_parse_agent_file(tmp_path):
    path = _agent_file(
        tmp_path,
        "reviewer",
        "---\nname: reviewer\ndescription: Reviews diffs\ntools: read_file, grep\nmodel: openai/gpt-4o\nmax_steps: 12\n---\n\nYou review code.\n",
    )

    config = AgentLoader.parse_agent_file(path)

    assert config.name == "reviewer"
    assert config.description == "Reviews diffs"
    assert config.tools == ["read_file", "grep"]
    assert config.model == "openai/gpt-4o"
    assert config.max_steps == 12
    assert config.system_prompt == "You review code."
    assert config.allows_tool("grep")
    assert not config.allows_tool("write_file")


@pytest.mark.parametrize(
    "body",
    [
        "no frontmatter here",
        "---\ndescription: missing name\n---\nbody",
        "---\nname: [unclosed\n---\nbody",
        "---\nname: bad\nmax_steps: 0\n---\nbody",
    ],
)
def test_invalid_agent_files_skipped(tmp_path, body):
    assert AgentLoader.parse_agent_file(_agent_file(tmp_path, "x", body)) is None


def test_project_agents_override_user_agents(home, workspace):
    _agent_file(home / ".deepstate" / "agents", "helper", "---\nname: helper\ndescription: user level\n---\nuser")
    _agent_file(workspace / ".deepstate" / "agents", "helper", "---\nname: helper\ndescription: project level\n---\nproject")
    _agent_file(home / ".deepstate" / "agents", "other", "---\nname: other\n---\n")

    loader = AgentLoader(workspace_root=workspace, home=home)
    agents = loader.load_all_agents()

    assert agents["helper"].description == "project level"
    assert agents["other"].tools == ["*"]
    assert sorted(loader.list_agents()) == ["helper", "other"]
    assert loader.get_agent("missing") is None


def _skill(directory, dirname, body):
    skill_dir = directory / dirname
    skill_dir.mkdir(parents=True, exist_ok=True)
    path = skill_dir / "SKILL.md"
    path.write_text(body, encoding="utf-8")
    return path


def test_parse_skill_file(tmp_path):
    path = _skill(tmp_path, "web-research", "---\nname: web-research\ndescription: Research the web\n---\n\n# Steps\n")

    skill = AgentLoader.parse_skill_file(path, "project")

    assert skill.name == "web-research"
    assert skill.description == "Research the web"
    assert skill.path == path.resolve()
    assert skill.source == "project"


@pytest.mark.parametrize(
    "body",
    [
        "# Just markdown\n",
        "---\nname: incomplete\n---\nbody",
        "---\ndescription: no name\n---\nbody",
        "---\nname: [unclosed\n---\nbody",
    ],
)
def test_invalid_skill_files_skipped(tmp_path, body):
    assert AgentLoader.parse_skill_file(_skill(tmp_path, "x", body), "user") is None


def test_project_skills_override_user_skills(home, workspace):
    user_dir = home / ".deepstate" / "skills"
    project_dir = workspace / ".deepstate" / "skills"
    _skill(user_dir, "shared", "---\nname: shared\ndescription: user level\n---\n")
    _skill(user_dir, "only-user", "---\nname: only-user\ndescription: from home\n---\n")
    _skill(project_dir, "shared", "---\nname: shared\ndescription: project level\n---\n")
    _skill(project_dir, ".hidden", "---\nname: hidden\ndescription: skipped\n---\n")
    (project_dir / "notes").mkdir()

    skills = AgentLoader(workspace_root=workspace, home=home).load_all_skills()

    assert sorted(skills) == ["only-user", "shared"]
    assert skills["shared"].description == "project level"
    assert skills["shared"].source == "project"
    assert skills["only-user"].source == "user"


def test_symlinked_skill_directories_skipped(home, tmp_path):
    outside = tmp_path / "outside"
    _skill(outside, "evil", "---\nname: evil\ndescription: linked in\n---\n")
    skills_dir = home / ".deepstate" / "skills"
    skills_dir.mkdir(parents=True)
    (skills_dir / "evil").symlink_to(outside / "evil", target_is_directory=True)

    assert AgentLoader(home=home).load_all_skills() == {}


def test_skills_config_defaults(home):
    settings = AgentLoader(home=home).load()

    assert settings.skills.enabled is True
    assert settings.skills.enabled_skills == {}
