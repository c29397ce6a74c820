from directory_bootstrap.core.types import (
    DirectoryPath,
    EntryKind,
    EntryOutcome,
    GroupMembership,
    OuNode,
    ReconciliationResult,
    group_key,
    path_key,
)


def test_path_child_escapes_special_characters():
    root = DirectoryPath.domain_root(["contoso", "com"])
    path = root.child("OU", "Sales, East")

    assert path.dn == "OU=Sales\\, East,DC=contoso,DC=com"
    assert path.name == "Sales, East"


def test_path_from_dn_keeps_escaped_commas():
    path = DirectoryPath.from_dn("OU=Sales\\, East,DC=contoso,DC=com")

    assert len(path.components) == 3
    assert path.name == "Sales, East"
    assert path.parent == DirectoryPath.from_dn("DC=contoso,DC=com")


def test_path_equality_is_case_insensitive():
    a = DirectoryPath.from_dn("OU=Servers,DC=contoso,DC=com")
    b = DirectoryPath.from_dn("ou=servers,dc=CONTOSO,dc=com")

    assert a == b
    assert len({a, b}) == 1


def test_is_under_requires_strict_ancestor():
    root = DirectoryPath.domain_root(["contoso", "com"])
    servers = root.child("OU", "Servers")

    assert servers.is_under(root)
    assert servers.child("OU", "Member Servers").is_under(root)
    assert not root.is_under(root)
    assert not root.is_under(servers)


def test_ou_dependency_keys():
    root = DirectoryPath.domain_root(["contoso", "com"])
    parent = OuNode("Servers", root)
    child = OuNode("Member Servers", parent.path)

    assert child.depends_on() == (parent.provides(),)
    assert parent.provides() == path_key(root.child("OU", "servers"))


def test_membership_depends_on_both_sides():
    entry = GroupMembership(group="SVR-Local-Administrators", member="Tier0-Admins")

    assert entry.depends_on() == (group_key("svr-local-administrators"), group_key("tier0-admins"))
    assert entry.provides() is None


def test_result_ok_follows_outcome():
    ok = ReconciliationResult(EntryKind.ou, "OU=A", EntryOutcome.planned)
    bad = ReconciliationResult(EntryKind.ou, "OU=A", EntryOutcome.timed_out)

    assert ok.ok
    assert not bad.ok
