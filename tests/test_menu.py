import json
import os
from datetime import datetime, timedelta

import pytest

import EventLogAnalyzer as ela
from conftest import FakeEventLog, make_record, scripted_input


def _menu(catalog, fake, presets_path, answers, **kwargs):
    analyzer = ela.EventLogAnalyzer(catalog, query_func=fake)
    store = ela.UserPresetStore(presets_path)
    return ela.InteractiveMenu(analyzer, catalog, store, input_func=scripted_input(answers), **kwargs)


def _save_user_presets(presets_path, count):
    presets = {}
    for i in range(count):
        name = f'Preset {i}'
        presets[name] = ela.Preset(name, (1000 + i,), 'Application', None, f'User preset {i}')
    ela.UserPresetStore(presets_path).save(presets)


@pytest.mark.parametrize("choice, expected", [
    ('1', ela.MenuCommand(ela.MENU_MANUAL, None)),
    ('2', ela.MenuCommand(ela.MENU_REFERENCE, None)),
    ('3', ela.MenuCommand(ela.MENU_CREATE_PRESET, None)),
    ('q', ela.MenuCommand(ela.MENU_QUIT, None)),
    (' Q ', ela.MenuCommand(ela.MENU_QUIT, None)),
    ('10', ela.MenuCommand(ela.MENU_BUILTIN_PRESET, '10')),
    ('19', ela.MenuCommand(ela.MENU_BUILTIN_PRESET, '19')),
    ('20', ela.MenuCommand(ela.MENU_USER_PRESET, 0)),
    ('21', ela.MenuCommand(ela.MENU_USER_PRESET, 1)),
])
def test_resolve_menu_choice(choice, expected):
    assert ela.resolve_menu_choice(choice, 2) == expected


@pytest.mark.parametrize("choice", ['', '0', '4', '9', '22', '23', 'abc', '-20', '1.5', 'quit'])
def test_resolve_invalid_menu_choice(choice):
    assert ela.resolve_menu_choice(choice, 2).kind == ela.MENU_INVALID


def test_user_slot_without_presets_is_invalid():
    assert ela.resolve_menu_choice('20', 0).kind == ela.MENU_INVALID


def test_out_of_range_user_preset_redisplays_menu(catalog, presets_path, capsys):
    _save_user_presets(presets_path, 2)
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['23', 'Q']).run()

    out = capsys.readouterr().out
    assert "Invalid choice: '23'" in out
    assert out.count("Built-in presets:") == 2
    assert fake.calls == []


def test_quit_immediately(catalog, presets_path, capsys):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['q']).run()
    assert fake.calls == []
    assert "Exiting." in capsys.readouterr().out


def test_closed_console_exits_cleanly(catalog, presets_path, capsys):
    _menu(catalog, FakeEventLog(), presets_path, []).run()
    assert "Exiting." in capsys.readouterr().out


def test_builtin_preset_sets_log_name(catalog, presets_path):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['11', 'N']).run()
    assert fake.queried_ids == [4625, 4771, 4776]
    assert {c['log_name'] for c in fake.calls} == {'Security'}
    assert {c['provider_name'] for c in fake.calls} == {None}


def test_builtin_preset_sets_provider(catalog, presets_path):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['15', 'N']).run()
    assert fake.queried_ids == [7000, 7023, 7034, 7036, 7040, 7045]
    assert {c['provider_name'] for c in fake.calls} == {'Service Control Manager'}


def test_user_preset_runs_by_position(catalog, presets_path, capsys):
    _save_user_presets(presets_path, 2)
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['21', 'N']).run()
    assert fake.queried_ids == [1001]
    assert fake.calls[0]['log_name'] == 'Application'
    out = capsys.readouterr().out
    assert "20. Preset 0" in out
    assert "21. Preset 1" in out


def test_manual_entry_validates_and_reprompts(catalog, presets_path, capsys):
    fake = FakeEventLog()
    before = datetime.now()
    _menu(catalog, fake, presets_path, ['1', 'abc', '4624, 4625', 'Security', 'x', '3', 'N']).run()

    out = capsys.readouterr().out
    assert "'abc' is not a valid Event ID" in out
    assert "'x' is not a positive whole number" in out
    assert fake.queried_ids == [4624, 4625]
    assert fake.calls[0]['log_name'] == 'Security'
    start = fake.calls[0]['start_time']
    assert before - timedelta(days=3, seconds=5) <= start <= datetime.now() - timedelta(days=3)


def test_manual_entry_blank_answers_keep_defaults(catalog, presets_path):
    fake = FakeEventLog()
    before = datetime.now()
    _menu(catalog, fake, presets_path, ['1', '6008', '', '', 'N'], log_name='Application', days=2).run()
    assert fake.calls[0]['log_name'] == 'Application'
    assert fake.calls[0]['start_time'] <= before - timedelta(days=2) + timedelta(seconds=5)


def test_run_again_loop(catalog, presets_path):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['1', '41', '', '', 'Y', '1', '6008', '', '', 'N']).run()
    assert fake.queried_ids == [41, 6008]


def test_reference_links(catalog, presets_path, capsys):
    _menu(catalog, FakeEventLog(), presets_path, ['2', 'Q']).run()
    out = capsys.readouterr().out
    for _, url in ela.REFERENCE_LINKS:
        assert url in out


def test_create_preset_with_blank_name_aborts(catalog, presets_path, capsys):
    _menu(catalog, FakeEventLog(), presets_path, ['3', '   ', 'Q']).run()
    assert "Preset name cannot be empty" in capsys.readouterr().out
    assert not os.path.exists(presets_path)


def test_create_preset_then_run_it(catalog, presets_path):
    fake = FakeEventLog()
    answers = ['3', 'My logons', 'Logon checks', '4624,x', '4624,4625', 'Security', '20', 'N']
    _menu(catalog, fake, presets_path, answers).run()

    saved = ela.UserPresetStore(presets_path).load()
    assert saved['My logons'] == ela.Preset('My logons', (4624, 4625), 'Security', None, 'Logon checks')
    assert fake.queried_ids == [4624, 4625]
    assert fake.calls[0]['log_name'] == 'Security'


def test_create_preset_defaults_log_name(catalog, presets_path):
    _menu(catalog, FakeEventLog(), presets_path, ['3', 'Boot', '', '6005', '', 'Q']).run()
    assert ela.UserPresetStore(presets_path).load()['Boot'].log_name == 'System'


def test_export_prompt_after_results(catalog, presets_path, tmp_path):
    out_dir = tmp_path / 'exports'
    fake = FakeEventLog({4625: [make_record(4625)]})
    _menu(catalog, fake, presets_path, ['1', '4625', '', '', 'Y', 'N'], output_dir=str(out_dir)).run()
    files = os.listdir(out_dir)
    assert len(files) == 1
    assert files[0].startswith('EventLog_Analysis_')


def test_export_flag_skips_prompt(catalog, presets_path, tmp_path):
    fake = FakeEventLog({4625: [make_record(4625)]})
    _menu(catalog, fake, presets_path, ['1', '4625', '', '', 'N'],
          export_csv=True, output_dir=str(tmp_path)).run()
    assert len([p for p in os.listdir(tmp_path) if p.endswith('.csv')]) == 1


@pytest.mark.parametrize("choice", ['²', '¹⁰', '²⁰'])
def test_resolve_superscript_digits_are_invalid(choice):
    assert ela.resolve_menu_choice(choice, 2) == ela.MenuCommand(ela.MENU_INVALID, choice)


def test_superscript_menu_choice_redisplays_menu(catalog, presets_path, capsys):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['²', 'Q']).run()
    out = capsys.readouterr().out
    assert "Invalid choice: '²'" in out
    assert fake.calls == []


def test_superscript_day_count_reprompts(catalog, presets_path, capsys):
    fake = FakeEventLog()
    _menu(catalog, fake, presets_path, ['1', '41', '', '²', '2', 'N']).run()
    assert "'²' is not a positive whole number" in capsys.readouterr().out
    assert fake.queried_ids == [41]


def test_user_preset_with_repeated_ids_queries_each_once(catalog, presets_path, capsys):
    with open(presets_path, 'w', encoding='utf-8') as f:
        json.dump({'Dup': {'EventIDs': [41, 41]}}, f)
    fake = FakeEventLog({41: [make_record(41)]})
    _menu(catalog, fake, presets_path, ['20', 'N', 'N']).run()

    out = capsys.readouterr().out
    assert fake.queried_ids == [41]
    assert out.count("Event ID 41 (") == 1
    assert "Total events found: 1" in out
