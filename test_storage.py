import json

from configure_setting import Settings, load_settings, save_settings
from storage import KeyValueStore


def test_values_survive_reload(tmp_path):
    path = str(tmp_path / "nested" / "store.json")
    store = KeyValueStore(path)
    store.set('answer', {'value': 42})

    reloaded = KeyValueStore(path)
    assert reloaded.get('answer') == {'value': 42}
    assert 'answer' in reloaded

    reloaded.remove('answer')
    assert KeyValueStore(path).get('answer', 'gone') == 'gone'


def test_corrupted_file_starts_fresh(tmp_path, capsys):
    path = tmp_path / "store.json"
    path.write_text("{not json")

    store = KeyValueStore(str(path))
    assert store.get('calibration') is None
    assert "Corrupted" in capsys.readouterr().out

    store.set('calibration', {'neutral': 3.0})
    assert json.loads(path.read_text()) == {'calibration': {'neutral': 3.0}}


def test_non_object_file_is_ignored(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("[1, 2, 3]")
    assert KeyValueStore(str(path)).get('settings') is None


def test_settings_defaults_and_clamping():
    settings = Settings(sensitivity=3, posture_mode='lying')
    assert settings.sensitivity == 1.0
    assert settings.posture_mode == 'sitting'
    assert Settings(sensitivity=-1).sensitivity == 0.0
    assert settings.toggle_mode() == 'standing'
    assert settings.toggle_mode() == 'sitting'


def test_settings_round_trip(tmp_path):
    store = KeyValueStore(str(tmp_path / "store.json"))
    assert load_settings(store) == Settings()

    save_settings(store, Settings(sensitivity=0.8, posture_mode='standing', voice_enabled=True))
    loaded = load_settings(KeyValueStore(store.path))
    assert loaded.sensitivity == 0.8
    assert loaded.posture_mode == 'standing'
    assert loaded.voice_enabled


def test_unknown_settings_keys_are_ignored(tmp_path):
    store = KeyValueStore(str(tmp_path / "store.json"))
    store.set('settings', {'sensitivity': 0.2, 'retired_option': True})
    assert load_settings(store).sensitivity == 0.2


def test_undecodable_bytes_start_fresh(tmp_path, capsys):
    path = tmp_path / "store.json"
    path.write_bytes(b'{"calibration": "\xff\xfe"}')

    store = KeyValueStore(str(path))
    assert store.get('calibration') is None
    assert "Corrupted" in capsys.readouterr().out


def test_badly_typed_settings_fall_back_to_defaults(tmp_path):
    store = KeyValueStore(str(tmp_path / "store.json"))
    store.set('settings', {'sensitivity': None, 'posture_mode': 'standing'})
    assert load_settings(store) == Settings()

    store.set('settings', {'break_interval': 'soon'})
    assert load_settings(store) == Settings()


def test_theme_selects_overlay_colors():
    settings = Settings(theme='neon')
    assert settings.theme == 'light'
    light = settings.overlay_colors
    assert settings.toggle_theme() == 'dark'
    assert settings.overlay_colors != light
