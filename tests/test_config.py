import os

import crier
import pytest

from crier import config


presets = """
builds:
  listen: 0.0.0.0:5555
  send: 192.168.1.10:5555
  message: notify-send "Build" "{}"
  auth: hunter2

remote:
  topic: team/builds
  broker: mqtt.example.com
  port: 8883
  message: echo {}

confused:
  listen: 0.0.0.0:5555
  topic: team/builds
  message: echo {}
"""


@pytest.fixture
def preset_file(tmp_path):
    filename = tmp_path / 'presets.yaml'
    filename.write_text(presets)
    return str(filename)


def test_direct():

    resolved = config.resolve('listen', address='0.0.0.0:5555', message='echo {}')

    assert resolved.role == 'listen'
    assert resolved.mode == config.DirectMode('0.0.0.0:5555')
    assert resolved.mode.kind == 'direct'
    assert resolved.message == 'echo {}'
    assert resolved.auth is None


def test_relay_defaults():

    resolved = config.resolve('send', topic='builds', message='done', auth='')

    assert resolved.mode == config.RelayMode('broker.hivemq.com', 1883, 'builds')
    assert resolved.mode.kind == 'relay'
    assert resolved.auth is None


def test_invalid():

    with pytest.raises(ValueError):
        config.resolve('listen', message='echo {}')

    with pytest.raises(ValueError):
        config.resolve('listen', address='0.0.0.0:5555', topic='builds', message='echo {}')

    with pytest.raises(ValueError):
        config.resolve('listen', address='0.0.0.0:5555')

    with pytest.raises(ValueError):
        config.resolve('listen', address='nonsense', message='echo {}')

    with pytest.raises(ValueError):
        config.resolve('send', topic='builds/#', message='done')

    with pytest.raises(ValueError):
        config.resolve('send', topic='builds', port=0, message='done')

    with pytest.raises(ValueError):
        config.resolve('shout', address='0.0.0.0:5555', message='done')


def test_presets(preset_file):

    loaded = config.load_presets(preset_file)
    assert sorted(loaded) == ['builds', 'confused', 'remote']

    builds = config.get_preset('builds', preset_file)

    resolved = config.resolve('listen', preset=builds)
    assert resolved.mode == config.DirectMode('0.0.0.0:5555')
    assert resolved.message == 'notify-send "Build" "{}"'
    assert resolved.auth == 'hunter2'

    resolved = config.resolve('send', message='Build done!', preset=builds)
    assert resolved.mode == config.DirectMode('192.168.1.10:5555')
    assert resolved.message == 'Build done!'

    remote = config.get_preset('remote', preset_file)
    resolved = config.resolve('listen', preset=remote)
    assert resolved.mode == config.RelayMode('mqtt.example.com', 8883, 'team/builds')


def test_preset_precedence(preset_file):

    builds = config.get_preset('builds', preset_file)

    # Explicit values win over the preset.
    resolved = config.resolve('listen', address='127.0.0.1:6000', auth='other', preset=builds)
    assert resolved.mode == config.DirectMode('127.0.0.1:6000')
    assert resolved.auth == 'other'

    # An explicit topic overrides the preset's address.
    resolved = config.resolve('listen', topic='mine', preset=builds)
    assert resolved.mode == config.RelayMode('broker.hivemq.com', 1883, 'mine')

    confused = config.get_preset('confused', preset_file)
    with pytest.raises(ValueError):
        config.resolve('listen', preset=confused)


def test_bad_presets(tmp_path, preset_file):

    with pytest.raises(KeyError):
        config.get_preset('missing', preset_file)

    filename = tmp_path / 'unknown.yaml'
    filename.write_text('one:\n  listen: 0.0.0.0:1\n  colour: blue\n')
    with pytest.raises(ValueError):
        config.load_presets(str(filename))

    filename = tmp_path / 'list.yaml'
    filename.write_text('- one\n- two\n')
    with pytest.raises(ValueError):
        config.load_presets(str(filename))

    filename = tmp_path / 'broken.yaml'
    filename.write_text('one: [unclosed\n')
    with pytest.raises(ValueError):
        config.load_presets(str(filename))

    filename = tmp_path / 'empty.yaml'
    filename.write_text('')
    assert config.load_presets(str(filename)) == dict()


def test_directory(tmp_path, monkeypatch):

    monkeypatch.setattr(config.directory, 'found', None)
    monkeypatch.setenv('CRIER_HOME', str(tmp_path))

    assert config.directory() == str(tmp_path)

    # No presets file in the home directory is not an error.
    assert config.load_presets() == dict()

    (tmp_path / 'presets.yaml').write_text(presets)
    assert 'remote' in config.load_presets()

    monkeypatch.setattr(config.directory, 'found', None)
    monkeypatch.delenv('CRIER_HOME')
    monkeypatch.setenv('HOME', '/home/somebody')

    assert config.directory() == os.path.join('/home/somebody', '.crier')

    monkeypatch.setattr(config.directory, 'found', None)

    with pytest.raises(ValueError):
        config.directory('relative/path')


def test_run_config():

    resolved = crier.RunConfig('send', config.DirectMode('127.0.0.1:1'), 'hi')

    with pytest.raises(AttributeError):
        resolved.message = 'changed'

    with pytest.raises(ValueError):
        crier.RunConfig('send', config.DirectMode('127.0.0.1:1'), '')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
