"""
Tests for the command line interface.
"""

import logging
import pytest
from click.testing import CliRunner

from rawlinear.cli import convert_commands
from rawlinear.cli.convert_commands import main
from rawlinear.processing.models import BatchSummary


@pytest.fixture
def runner():
    yield CliRunner()
    # The console handler holds the runner's stderr, which is closed by now
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, '_rawlinear', False)]:
        root.removeHandler(handler)


@pytest.fixture
def exiftool_present(monkeypatch):
    monkeypatch.setattr(convert_commands.shutil, 'which', lambda name: f'/usr/bin/{name}')


class RecordingDispatcher:
    """Replaces BatchDispatcher; remembers its options and search root."""
    instances = []

    def __init__(self, options, show_progress=True):
        self.options = options
        self.search_root = None
        RecordingDispatcher.instances.append(self)

    def run(self, search_root):
        self.search_root = search_root
        return BatchSummary()


class TestUsage:
    """Test argument handling and exit codes."""

    def test_help(self, runner):
        for flag in ('-h', '--help'):
            result = runner.invoke(main, [flag])
            assert result.exit_code == 0
            assert '--batch' in result.output

    def test_no_input(self, runner):
        assert runner.invoke(main, []).exit_code == 2

    def test_batch_and_files(self, runner, tmp_path):
        raw = tmp_path / 'a.NEF'
        raw.write_bytes(b'raw')
        assert runner.invoke(main, ['-b', str(raw)]).exit_code == 2

    @pytest.mark.parametrize("args", [
        ['-b', '-r', '6'],
        ['-b', '-a', '4'],
        ['-b', '-C', '7'],
        ['-b', '-H', '10'],
        ['-b', '-f', 'sideways'],
        ['-b', '-s', '0'],
    ])
    def test_out_of_range_values(self, runner, args):
        assert runner.invoke(main, args).exit_code == 2

    def test_missing_exiftool(self, runner, tmp_path, monkeypatch):
        monkeypatch.setattr(convert_commands.shutil, 'which', lambda name: None)
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path)])

        assert result.exit_code == 1
        assert 'exiftool not found' in result.output

    def test_bad_config_file(self, runner, tmp_path, exiftool_present):
        config = tmp_path / 'bad.yaml'
        config.write_text("decoder: [unclosed\n")
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path), '--config', str(config)])

        assert result.exit_code == 1


class TestDispatch:
    """Test that options reach the pipeline."""

    def test_batch_mode(self, runner, tmp_path, monkeypatch, exiftool_present):
        RecordingDispatcher.instances = []
        monkeypatch.setattr(convert_commands, 'BatchDispatcher', RecordingDispatcher)
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path), '-c', '-o', '-g',
                                      '-r', '2', '-f', 'flop', '-s', '2048', '-w', '-j', '3'])

        assert result.exit_code == 0, result.output
        assert 'CONVERSION SUMMARY' in result.output
        dispatcher = RecordingDispatcher.instances[0]
        assert dispatcher.search_root == tmp_path
        options = dispatcher.options
        assert options.crop and options.orientation and options.desaturate
        assert options.rating_threshold == 2
        assert options.mirror == 'flop'
        assert options.resize == 2048
        assert options.camera_white_balance is False
        assert options.jobs == 3

    def test_file_mode(self, runner, tmp_path, monkeypatch, exiftool_present):
        raw = tmp_path / 'DSC_0001.NEF'
        raw.write_bytes(b'raw')
        calls = []

        def fake_convert_files(paths, options):
            calls.append((list(paths), options))
            return BatchSummary(total_count=1)

        monkeypatch.setattr(convert_commands, 'convert_files', fake_convert_files)
        result = runner.invoke(main, [str(raw), '-H', '1', '-a', '0', '-C', '2'])

        assert result.exit_code == 0, result.output
        paths, options = calls[0]
        assert paths == [raw]
        assert options.highlight_mode == 1
        assert options.demosaic_algorithm == 0
        assert options.output_colorspace == 2

    def test_output_dir_created(self, runner, tmp_path, monkeypatch, exiftool_present):
        monkeypatch.setattr(convert_commands, 'BatchDispatcher', RecordingDispatcher)
        out = tmp_path / 'out'
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path), '-O', str(out)])

        assert result.exit_code == 0, result.output
        assert out.is_dir()

    def test_unusable_output_dir(self, runner, tmp_path, monkeypatch, exiftool_present):
        RecordingDispatcher.instances = []
        monkeypatch.setattr(convert_commands, 'BatchDispatcher', RecordingDispatcher)
        blocker = tmp_path / 'blocker'
        blocker.write_bytes(b'')
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path), '-O', str(blocker / 'out')])

        assert result.exit_code == 1
        assert 'Cannot create output directory' in result.output
        assert RecordingDispatcher.instances == []

    def test_interrupt_exits_130(self, runner, tmp_path, monkeypatch, exiftool_present):
        class InterruptedDispatcher(RecordingDispatcher):
            def run(self, search_root):
                raise KeyboardInterrupt

        monkeypatch.setattr(convert_commands, 'BatchDispatcher', InterruptedDispatcher)
        result = runner.invoke(main, ['-b', '--search-root', str(tmp_path)])

        assert result.exit_code == 130
