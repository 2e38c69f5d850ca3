"""
Tests for site object lookups, folder moves and security scopes.
"""
import pytest

from cmshell.core import COLLECTION_TYPE_DEVICE, SiteObjects, looks_like_object_id, split_folder_path
from cmshell.errors import CMConnectionError, CMObjectNotFoundError, CMValidationError


@pytest.fixture
def objects(context):
    return SiteObjects(context)


def test_looks_like_object_id():
    assert looks_like_object_id('PS100012')
    assert looks_like_object_id('sms00001')
    assert not looks_like_object_id('All Systems')
    assert not looks_like_object_id('PS1000123')


def test_split_folder_path():
    assert split_folder_path('Apps\\Office/2019\\') == ['Apps', 'Office', '2019']
    assert split_folder_path('') == []


class TestLookups:

    def test_find_package_by_name(self, objects, engine):
        engine.query.return_value = [{'PackageID': 'PS100012', 'Name': "Bob's Tools"}]

        package = objects.find_package(name="Bob's Tools")

        assert package['PackageID'] == 'PS100012'
        engine.query.assert_called_once_with("SELECT * FROM SMS_Package WHERE Name = 'Bob\\'s Tools'")

    def test_find_package_requires_one_key(self, objects):
        with pytest.raises(CMValidationError):
            objects.find_package()
        with pytest.raises(CMValidationError):
            objects.find_package(name='A', package_id='PS100012')

    def test_find_collection_with_type(self, objects, engine):
        engine.query.return_value = []

        assert objects.find_collection(collection_id='sms00001', collection_type=COLLECTION_TYPE_DEVICE) is None
        engine.query.assert_called_once_with(
            "SELECT * FROM SMS_Collection WHERE CollectionID = 'SMS00001' AND CollectionType = 2")

    def test_resolve_collection_falls_back_to_name(self, objects, engine):
        engine.query.side_effect = [[], [{'CollectionID': 'PS100020', 'Name': 'PS100020'}]]

        assert objects.resolve_collection('PS100020')['CollectionID'] == 'PS100020'
        assert engine.query.call_count == 2

    def test_resolve_collection_by_name_only(self, objects, engine):
        engine.query.return_value = [{'CollectionID': 'SMS00001', 'Name': 'All Systems'}]

        assert objects.resolve_collection('All Systems')['CollectionID'] == 'SMS00001'
        engine.query.assert_called_once()

    def test_resolve_collection_not_found(self, objects, engine):
        engine.query.return_value = []

        with pytest.raises(CMObjectNotFoundError, match="'Pilot' was not found"):
            objects.resolve_collection('Pilot')

    def test_resolve_task_sequence(self, objects, engine):
        engine.query.return_value = [{'PackageID': 'PS100100', 'Name': 'Win11 Deploy'}]
        assert objects.resolve_task_sequence('Win11 Deploy')['PackageID'] == 'PS100100'

    def test_find_device_by_mac_normalizes(self, objects, engine):
        engine.query.return_value = [{'ResourceId': 16777220, 'Name': 'PC01'}]

        devices = objects.find_device(mac='00-1a-2b-3c-4d-5e')

        assert devices[0]['Name'] == 'PC01'
        assert "MACAddresses = '00:1A:2B:3C:4D:5E'" in engine.query.call_args[0][0]

    def test_find_device_rejects_bad_mac(self, objects, engine):
        with pytest.raises(CMValidationError):
            objects.find_device(mac='00-1a')
        engine.query.assert_not_called()

    def test_get_collection_members(self, objects, engine):
        engine.query.return_value = [{'ResourceID': 1, 'Name': 'PC01'}]

        assert objects.get_collection_members('ps100020') == [{'ResourceID': 1, 'Name': 'PC01'}]
        assert "FROM SMS_FullCollectionMembership WHERE CollectionID = 'PS100020'" in engine.query.call_args[0][0]

    def test_lookup_without_provider(self, objects, context):
        context.provider_available = False
        with pytest.raises(CMConnectionError):
            objects.find_package(name='App')


class TestFolders:

    def test_find_folder_walks_path(self, objects, engine):
        engine.query.side_effect = [
            [{'ContainerNodeID': 16777230, 'Name': 'Apps'}],
            [{'ContainerNodeID': 16777231, 'Name': 'Office'}],
        ]

        folder = objects.find_folder('Package', 'Apps\\Office')

        assert folder['ContainerNodeID'] == 16777231
        second_query = engine.query.call_args_list[1][0][0]
        assert "Name = 'Office'" in second_query
        assert 'ObjectType = 2' in second_query
        assert 'ParentContainerNodeID = 16777230' in second_query

    def test_find_folder_missing_level(self, objects, engine):
        engine.query.side_effect = [[{'ContainerNodeID': 16777230}], []]
        assert objects.find_folder('DeviceCollection', 'Apps\\Missing') is None

    def test_require_folder(self, objects, engine):
        engine.query.return_value = []
        with pytest.raises(CMObjectNotFoundError, match="Folder 'Nope'"):
            objects.require_folder('TaskSequence', 'Nope')

    def test_unknown_object_type(self, objects):
        with pytest.raises(CMValidationError, match="Unknown object type"):
            objects.find_folder('Application', 'Apps')

    def test_move_to_folder(self, objects, runner):
        objects.move_to_folder('UserCollection', 'PS100021', 'Pilot/Finance')

        runner.invoke.assert_called_once_with(
            'Move-CMObject', {'FolderPath': 'PS1:\\UserCollection\\Pilot\\Finance', 'ObjectId': 'PS100021'})

    def test_move_requires_admin_shell(self, objects, context, runner):
        context.drive_available = False
        with pytest.raises(CMConnectionError):
            objects.move_to_folder('Package', 'PS100012', 'Apps')
        runner.invoke.assert_not_called()


class TestSecurityScopes:

    def test_add_security_scopes_pipes_object(self, objects, runner):
        objects.add_security_scopes('TaskSequence', 'PS100100', ['Servers', 'Workstations'])

        assert runner.invoke.call_count == 2
        runner.invoke.assert_any_call(
            'Add-CMObjectSecurityScope', {'Name': 'Servers'},
            pipe_from="Get-CMTaskSequence -TaskSequencePackageId 'PS100100' -Fast")

    def test_require_security_scopes(self, objects, engine):
        engine.query.side_effect = [[{'CategoryID': 'SMS00UNA', 'CategoryName': 'Default'}], []]

        with pytest.raises(CMObjectNotFoundError, match="'Nope'"):
            objects.require_security_scopes(['Default', 'Nope'])

    def test_delete_object(self, objects, engine):
        objects.delete_object('DeviceCollection', 'PS100020')
        engine.delete_instance.assert_called_once_with('SMS_Collection', 'CollectionID', 'PS100020')
