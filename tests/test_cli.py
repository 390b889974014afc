"""
Tests for the CLI module.
"""

import unittest
from pathlib import Path
from unittest.mock import patch
import io
import json
import tempfile

from sinktrace.cli import main


class TestCLI(unittest.TestCase):
    """Test cases for the command-line interface."""

    def setUp(self):
        """Create a small bundle to analyze."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.js', delete=False) as f:
            f.write('fetch("/api/ping"); el.innerHTML = location.hash;')
            self.temp_path = f.name

    def tearDown(self):
        Path(self.temp_path).unlink()

    def test_version_argument(self):
        """Test that --version flag works."""
        with self.assertRaises(SystemExit) as cm:
            with patch('sys.stdout', new_callable=io.StringIO):
                main(['--version'])
        self.assertEqual(cm.exception.code, 0)

    def test_help_argument(self):
        """Test that --help flag works."""
        with self.assertRaises(SystemExit) as cm:
            with patch('sys.stdout', new_callable=io.StringIO):
                main(['--help'])
        self.assertEqual(cm.exception.code, 0)

    def test_no_command(self):
        """Test that running without a command prints help and fails."""
        with patch('sys.stdout', new_callable=io.StringIO) as mock_stdout:
            exit_code = main([])
        self.assertEqual(exit_code, 1)
        self.assertIn('analyze', mock_stdout.getvalue())

    def test_nonexistent_path(self):
        """Test error handling for non-existent paths."""
        with patch('sys.stderr', new_callable=io.StringIO) as mock_stderr:
            exit_code = main(['analyze', '/nonexistent/path/to/file.js'])
            self.assertEqual(exit_code, 1)
            self.assertIn("does not exist", mock_stderr.getvalue())

    def test_valid_file_path(self):
        """Test analysis of a valid file path."""
        with patch('sys.stdout', new_callable=io.StringIO) as mock_stdout:
            exit_code = main(['analyze', self.temp_path])
            self.assertEqual(exit_code, 0)
            output = mock_stdout.getvalue()
            self.assertIn('/api/ping', output)
            self.assertIn('xss via innerHTML', output)

    def test_output_file(self):
        """Test writing JSON results."""
        with tempfile.TemporaryDirectory() as temp_dir:
            output = Path(temp_dir) / 'out.json'
            with patch('sys.stdout', new_callable=io.StringIO):
                exit_code = main(['analyze', self.temp_path, '-o', str(output)])
            self.assertEqual(exit_code, 0)
            with open(output, 'r') as f:
                loaded = json.load(f)
        self.assertEqual(loaded['records'][0]['fetchCallSites'][0]['url'], '/api/ping')

    def test_batch_mode(self):
        """Test the merged report of a multi-job run."""
        with tempfile.TemporaryDirectory() as temp_dir:
            (Path(temp_dir) / 'only.js').write_text('fetch("/one");')
            with patch('sys.stdout', new_callable=io.StringIO) as mock_stdout:
                exit_code = main(['analyze', temp_dir, '-j', '2'])
        self.assertEqual(exit_code, 0)
        self.assertIn('Batch Analysis Summary', mock_stdout.getvalue())
        self.assertIn('/one', mock_stdout.getvalue())

    def test_verbose_flag(self):
        """Test that verbose flag is properly passed."""
        with patch('sys.stdout', new_callable=io.StringIO) as mock_stdout, \
                patch('sys.stderr', new_callable=io.StringIO):
            exit_code = main(['analyze', self.temp_path, '--verbose'])
            self.assertEqual(exit_code, 0)
            self.assertIn('Analyzing file', mock_stdout.getvalue())


if __name__ == '__main__':
    unittest.main()
