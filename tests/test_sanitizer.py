"""Tests for removing Vault bindings from Visual Studio files."""

import pytest

from vault_migrate.sanitize.sanitizer import (
    WorkingTreeSanitizer,
    strip_deployment_project,
    strip_project,
    strip_solution,
)

SOLUTION = (
    'Microsoft Visual Studio Solution File, Format Version 12.00\r\n'
    'Global\r\n'
    '\tGlobalSection(SourceCodeControl) = preSolution\r\n'
    '\t\tSccNumberOfProjects = 2\r\n'
    '\t\tSccLocalPath0 = .\r\n'
    '\tEndGlobalSection\r\n'
    '\tGlobalSection(SolutionProperties) = preSolution\r\n'
    '\t\tHideSolutionNode = FALSE\r\n'
    '\tEndGlobalSection\r\n'
    'EndGlobal\r\n'
)

PROJECT = """<?xml version="1.0" encoding="utf-8"?>
<Project ToolsVersion="4.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
  <PropertyGroup>
    <!-- bindings below -->
    <AssemblyName>App</AssemblyName>
    <SccProjectName>SAK</SccProjectName>
    <SccLocalPath>SAK</SccLocalPath>
    <SccProvider>SAK</SccProvider>
  </PropertyGroup>
</Project>
"""

DEPLOYMENT = (
    '"DeployProject"\n'
    '{\n'
    '"VSVersion" = "3:800"\n'
    '"SccProjectName" = "8:SAK"\n'
    '    "SccLocalPath" = "8:SAK"\n'
    '}\n'
)


class TestStripSolution:
    """Test .sln cleaning."""

    def test_section_removed(self, tmp_path):
        """Test that only the source control section goes."""
        path = tmp_path / 'App.sln'
        path.write_bytes(SOLUTION.encode('utf-8'))

        assert strip_solution(path)

        text = path.read_bytes().decode('utf-8')
        assert 'SourceCodeControl' not in text
        assert 'Scc' not in text
        assert 'GlobalSection(SolutionProperties)' in text
        assert text.endswith('EndGlobal\r\n')

    def test_bom_preserved(self, tmp_path):
        """Test that the UTF-8 byte order mark survives."""
        path = tmp_path / 'App.sln'
        path.write_bytes(b'\xef\xbb\xbf' + SOLUTION.encode('utf-8'))

        strip_solution(path)

        assert path.read_bytes().startswith(b'\xef\xbb\xbf')

    def test_idempotent(self, tmp_path):
        """Test that a clean solution is left untouched."""
        path = tmp_path / 'App.sln'
        path.write_bytes(SOLUTION.encode('utf-8'))
        strip_solution(path)
        cleaned = path.read_bytes()

        assert not strip_solution(path)
        assert path.read_bytes() == cleaned

    def test_every_section_removed(self, tmp_path):
        """Test that repeated source control sections all go in one pass."""
        path = tmp_path / 'App.sln'
        path.write_bytes(
            (
                'Global\r\n'
                '\tGlobalSection(SourceCodeControl) = preSolution\r\n'
                '\t\tSccNumberOfProjects = 1\r\n'
                '\tEndGlobalSection\r\n'
                '\tGlobalSection(SourceCodeControl) = preSolution\r\n'
                '\t\tSccLocalPath0 = .\r\n'
                '\tEndGlobalSection\r\n'
                'EndGlobal\r\n'
            ).encode('utf-8')
        )

        assert strip_solution(path)

        assert path.read_bytes() == b'Global\r\nEndGlobal\r\n'
        assert not strip_solution(path)

    def test_unterminated_section_kept(self, tmp_path):
        """Test that a section without its end marker is not cut."""
        text = 'Global\r\n\tGlobalSection(SourceCodeControl) = preSolution\r\n'
        path = tmp_path / 'App.sln'
        path.write_bytes(text.encode('utf-8'))

        assert not strip_solution(path)
        assert path.read_bytes() == text.encode('utf-8')


class TestStripProject:
    """Test MSBuild project cleaning."""

    def test_scc_elements_removed(self, tmp_path):
        """Test that Scc elements go and everything else stays."""
        path = tmp_path / 'App.csproj'
        path.write_text(PROJECT, encoding='utf-8')

        assert strip_project(path)

        text = path.read_text(encoding='utf-8')
        assert '<Scc' not in text
        assert '<AssemblyName>App</AssemblyName>' in text
        assert 'bindings below' in text
        assert text.startswith('<?xml')
        assert 'xmlns="http://schemas.microsoft.com/developer/msbuild/2003"' in text
        assert 'ns0:' not in text

    def test_idempotent(self, tmp_path):
        """Test that a second pass changes nothing."""
        path = tmp_path / 'App.csproj'
        path.write_text(PROJECT, encoding='utf-8')
        strip_project(path)
        cleaned = path.read_bytes()

        assert not strip_project(path)
        assert path.read_bytes() == cleaned

    def test_layout_kept(self, tmp_path):
        """Test that only the Scc lines disappear from the file."""
        path = tmp_path / 'App.csproj'
        path.write_text(PROJECT, encoding='utf-8')

        strip_project(path)

        assert path.read_text(encoding='utf-8') == (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<Project ToolsVersion="4.0" '
            'xmlns="http://schemas.microsoft.com/developer/msbuild/2003">\n'
            '  <PropertyGroup>\n'
            '    <!-- bindings below -->\n'
            '    <AssemblyName>App</AssemblyName>\n'
            '  </PropertyGroup>\n'
            '</Project>\n'
        )

    def test_markup_around_root_kept(self, tmp_path):
        """Test that the declaration, comments and CRLF endings survive."""
        header = (
            b'\xef\xbb\xbf'
            b'<?xml version="1.0" encoding="utf-8" standalone="yes"?>\r\n'
            b'<!-- generated header -->\r\n'
            b'<Project DefaultTargets="Build" '
            b'xmlns="http://schemas.microsoft.com/developer/msbuild/2003">\r\n'
            b'  <PropertyGroup>\r\n'
        )
        footer = (
            b'    <OutputType>Exe</OutputType>\r\n'
            b'  </PropertyGroup>\r\n'
            b'</Project>\r\n'
            b'<!-- trailer -->\r\n'
        )
        path = tmp_path / 'App.vbproj'
        path.write_bytes(header + b'    <SccProjectName>SAK</SccProjectName>\r\n' + footer)

        assert strip_project(path)

        assert path.read_bytes() == header + footer


class TestStripDeploymentProject:
    """Test .vdproj cleaning."""

    def test_scc_lines_removed(self, tmp_path):
        """Test that indented and unindented Scc lines go."""
        path = tmp_path / 'Setup.vdproj'
        path.write_text(DEPLOYMENT, encoding='utf-8')

        assert strip_deployment_project(path)

        assert path.read_text(encoding='utf-8') == (
            '"DeployProject"\n{\n"VSVersion" = "3:800"\n}\n'
        )
        assert not strip_deployment_project(path)


class TestWorkingTreeSanitizer:
    """Test dispatch and tree walking."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sanitizer = WorkingTreeSanitizer()

    @pytest.mark.parametrize(
        'name', ['App.sln', 'App.CSPROJ', 'Lib.vbproj', 'Native.vcxproj', 'Setup.vdproj']
    )
    def test_supported(self, name):
        """Test the handled extensions."""
        assert self.sanitizer.is_supported(name)

    def test_other_files_untouched(self, tmp_path):
        """Test that unrelated files are never rewritten."""
        path = tmp_path / 'notes.txt'
        path.write_text('SccProjectName', encoding='utf-8')

        assert not self.sanitizer.sanitize(path)
        assert path.read_text(encoding='utf-8') == 'SccProjectName'

    def test_malformed_project_left_alone(self, tmp_path):
        """Test that an unparseable project is kept as it is."""
        path = tmp_path / 'Broken.csproj'
        path.write_text('<Project><SccProjectName>', encoding='utf-8')

        assert not self.sanitizer.sanitize(path)
        assert path.read_text(encoding='utf-8') == '<Project><SccProjectName>'

    def test_sanitize_tree(self, tmp_path):
        """Test that the walk skips git metadata and temporary files."""
        (tmp_path / '.git').mkdir()
        (tmp_path / '.git' / 'App.sln').write_bytes(SOLUTION.encode('utf-8'))
        (tmp_path / 'src').mkdir()
        (tmp_path / 'src' / 'App.sln').write_bytes(SOLUTION.encode('utf-8'))
        (tmp_path / 'src' / '~App.sln').write_bytes(SOLUTION.encode('utf-8'))

        self.sanitizer.sanitize_tree(tmp_path)

        assert b'SourceCodeControl' not in (tmp_path / 'src' / 'App.sln').read_bytes()
        assert b'SourceCodeControl' in (tmp_path / 'src' / '~App.sln').read_bytes()
        assert b'SourceCodeControl' in (tmp_path / '.git' / 'App.sln').read_bytes()
