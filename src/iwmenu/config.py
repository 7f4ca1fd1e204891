import os
import yaml

CONFIG_ENV_VAR = 'IWMENU_CONFIG'

DEFAULTS = {
    'menu': None,
    'menu_command': None,
    'icon': 'glyph',
    'spaces': 1,
    'log_level': 'WARNING',
    'log_file': None,
    'icons_file': None,
}


def default_config_path() -> str:
    base = os.environ.get('XDG_CONFIG_HOME') or os.path.join(
        os.path.expanduser('~'), '.config')
    return os.path.join(base, 'iwmenu', 'config.yaml')


def resolve_config_path(path: str | None = None) -> str:
    cfg_path = path or os.environ.get(CONFIG_ENV_VAR) or default_config_path()
    return os.path.abspath(os.path.expanduser(cfg_path))


def load_config(path: str | None = None) -> dict:
    cfg_path = resolve_config_path(path)
    if not os.path.exists(cfg_path):
        return dict(DEFAULTS)
    with open(cfg_path, 'r', encoding='utf-8') as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {cfg_path} must contain a mapping")
    merged = dict(DEFAULTS)
    merged.update({k.replace('-', '_'): v for k, v in data.items()})
    return merged


def merge_cli_overrides(config: dict, overrides: dict) -> dict:
    """Command-line values win over the file; None means "not given"."""
    merged = dict(config)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged
