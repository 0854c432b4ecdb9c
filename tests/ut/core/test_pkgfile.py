"""pkgfile.py 单元测试: 定义文件解析与加入目录"""

from __future__ import annotations

from pathlib import Path

import pytest
from semver import Version

from mercurium.core.exceptions import InvalidDefinitionError
from mercurium.core.models import InstallState, Local, Package
from mercurium.core.pkgfile import add_to_catalog, load_definition, parse_definition
from mercurium.core.store import PackageStore, Table

CHECKSUM = "ab" * 64

TOML_DEF = f"""
[package]
name = "ripgrep"
version = "14.1.0"
license = "MIT"
authors = ["BurntSushi"]
dependencies = ["pcre2"]

[source]
url = "https://example.com/ripgrep-14.1.0.tar.gz"
checksum = "{CHECKSUM.upper()}"
build = "make"
install = "mv ${{source}}/rg ${{binary}}"
"""

YAML_DEF = """
package:
  name: fd
  version: 8.7.1
  license: Apache-2.0
source:
  url: https://example.com/fd.tar.gz
  install: cp fd ${binary}
"""


def _doc(**overrides) -> dict:
    doc = {
        "package": {"name": "jq", "version": "1.7.1", "license": "MIT"},
        "source": {"url": "https://example.com/jq.tar.gz", "install": "true"},
    }
    for key, value in overrides.items():
        section, field = key.split("__")
        if value is None:
            doc[section].pop(field, None)
        else:
            doc[section][field] = value
    return doc


class TestParseDefinition:
    def test_minimal(self) -> None:
        defn = parse_definition(_doc())
        assert defn.name == "jq"
        assert defn.version == Version.parse("1.7.1")
        assert defn.info.dependencies is None
        assert defn.source.checksum is None
        assert defn.source.build is None

    def test_missing_section(self) -> None:
        with pytest.raises(InvalidDefinitionError, match=r"\[source\]"):
            parse_definition({"package": _doc()["package"]})

    @pytest.mark.parametrize("field", ["package__name", "package__license", "source__url", "source__install"])
    def test_missing_required(self, field: str) -> None:
        with pytest.raises(InvalidDefinitionError):
            parse_definition(_doc(**{field: None}))

    def test_bad_version(self) -> None:
        with pytest.raises(InvalidDefinitionError, match="语义化版本"):
            parse_definition(_doc(package__version="1.7"))

    def test_bad_checksum(self) -> None:
        with pytest.raises(InvalidDefinitionError, match="SHA-512"):
            parse_definition(_doc(source__checksum="abc"))

    @pytest.mark.parametrize("name", ["../../escaped", "a/b", "a\\b", ".hidden", "x..y"])
    def test_unsafe_name(self, name: str) -> None:
        """包名参与路径拼接，不允许分隔符与上级引用"""
        with pytest.raises(InvalidDefinitionError, match="package.name"):
            parse_definition(_doc(package__name=name))

    def test_name_with_dash_and_dot(self) -> None:
        assert parse_definition(_doc(package__name="python3.12-dev")).name == "python3.12-dev"

    def test_bad_dependencies(self) -> None:
        with pytest.raises(InvalidDefinitionError, match="dependencies"):
            parse_definition(_doc(package__dependencies="pcre2"))

    def test_empty_list_is_none(self) -> None:
        assert parse_definition(_doc(package__dependencies=[])).info.dependencies is None


class TestLoadDefinition:
    def test_toml(self, tmp_path: Path) -> None:
        p = tmp_path / "ripgrep.pkg"
        p.write_text(TOML_DEF, encoding="utf-8")
        defn = load_definition(p)
        assert defn.name == "ripgrep"
        assert defn.info.authors == ("BurntSushi",)
        assert defn.info.dependencies == ("pcre2",)
        assert defn.source.checksum == CHECKSUM
        assert defn.source.install == "mv ${source}/rg ${binary}"

    def test_yaml(self, tmp_path: Path) -> None:
        p = tmp_path / "fd.yml"
        p.write_text(YAML_DEF, encoding="utf-8")
        defn = load_definition(p)
        assert defn.name == "fd"
        assert str(defn.version) == "8.7.1"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDefinitionError, match="不存在"):
            load_definition(tmp_path / "nope.toml")

    def test_syntax_error(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.toml"
        p.write_text("[package\nname=", encoding="utf-8")
        with pytest.raises(InvalidDefinitionError, match="解析失败"):
            load_definition(p)

    def test_error_carries_path(self, tmp_path: Path) -> None:
        p = tmp_path / "nover.toml"
        p.write_text('[package]\nname="x"\nlicense="MIT"\n[source]\nurl="u"\ninstall="i"\n')
        with pytest.raises(InvalidDefinitionError) as exc:
            load_definition(p)
        assert exc.value.path == str(p)


class TestAddToCatalog:
    def test_new_entry(self, store: PackageStore, make_definition) -> None:
        pkg = add_to_catalog(store, make_definition("jq"))
        assert pkg.local.added
        assert not pkg.local.installed.is_installed
        assert store.get(Table.ALL, "jq") == pkg
        assert store.get(Table.INSTALLED, "jq") is None

    def test_keeps_install_state(self, store: PackageStore, make_definition) -> None:
        state = InstallState.manually(Version.parse("1.0.0"))
        store.set(Table.ALL, "jq", Package.from_definition(make_definition("jq"), Local(installed=state)))

        pkg = add_to_catalog(store, make_definition("jq", "1.1.0"))
        assert pkg.local.installed == state
        assert str(pkg.info.version) == "1.1.0"
        mirror = store.get(Table.INSTALLED, "jq")
        assert mirror == pkg
