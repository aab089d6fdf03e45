"""Tests for payload parsing into graph nodes."""

import pytest

from cdisc_library_client.models import (
    CodeList,
    DataStructure,
    Dataset,
    DatasetType,
    Domain,
    Field,
    LoadState,
    Product,
    ProductGroup,
    Variable,
)
from cdisc_library_client.parser import (
    parse_catalog,
    parse_code_list,
    parse_code_list_listing,
    parse_into,
    parse_item_group,
    parse_item_group_listing,
    parse_product,
    validate_payload,
)
from cdisc_library_client.schemas import ItemGroupPayload


class TestCatalog:
    def test_parse_catalog(self, payload):
        catalog = parse_catalog(payload("products.json"), connection=None)

        assert list(catalog) == ["data-analysis", "data-collection", "data-tabulation", "terminology"]
        adam = catalog["data-analysis"].product_groups["adam"]
        assert list(adam.products) == ["adam-2-1", "adamig-1-0", "adamig-1-1"]

        adamig = adam.products["adamig-1-1"]
        assert adamig.href == "/mdr/adam/adamig-1-1"
        assert adamig.label == "Analysis Data Model Implementation Guide Version 1.1"
        assert adamig.load_state is LoadState.PARTIAL
        assert adamig.dataset_type is DatasetType.DATA_STRUCTURES

        ct = catalog["terminology"].product_groups["packages"].products["sdtmct-2019-12-20"]
        assert ct.type == "Terminology"
        assert ct.dataset_type is DatasetType.CODELISTS

    def test_parse_catalog_rejects_empty(self):
        assert parse_catalog({}, connection=None) is None
        assert parse_catalog(None, connection=None) is None


class TestDataStructureProduct:
    @pytest.fixture
    def adamig(self, payload):
        product = Product(href="/mdr/adam/adamig-1-1")
        assert parse_product(product, payload("adamig-1-1.json"))
        return product

    def test_scalars_and_state(self, adamig):
        assert adamig.name == "ADaMIG v1.1"
        assert adamig.effective_date == "2016-02-12"
        assert adamig.version == "1.1"
        assert adamig.fully_loaded

    def test_data_structures(self, adamig):
        assert list(adamig.data_structures) == ["ADSL", "BDS"]
        adsl = adamig.data_structures["ADSL"]
        assert adsl.class_name == "SUBJECT LEVEL ANALYSIS DATASET"
        assert adsl.fully_loaded
        assert adsl.get_variable_set_list() == ["Identifier", "Treatment"]
        assert adsl.analysis_variable_sets["Treatment"].name == "Treatment Variables"
        assert adsl.get_name_list() == ["STUDYID", "USUBJID", "TRTxxP", "TRxxPGy"]

    def test_variables(self, adamig):
        paramcd = adamig.data_structures["BDS"].get_item("PARAMCD")
        assert isinstance(paramcd, Variable)
        assert paramcd.id == "BDS.PARAMCD"
        assert paramcd.core == "Req"
        assert paramcd.codelist == "C81223"
        assert paramcd.codelist_href == "/mdr/root/ct/adamct/codelists/C81223"
        assert paramcd.type == "Analysis Variable"

    def test_dependencies(self, adamig):
        assert set(adamig.dependencies) == {"model", "priorVersion"}
        assert adamig.dependencies["model"].id == "adam-2-1"
        assert adamig.dependencies["priorVersion"].id == "adamig-1-0"

    def test_kind_never_switches(self, adamig, payload):
        """Test that a data structure product ignores class collections."""
        parse_product(adamig, payload("sdtmig-3-3.json"))
        assert adamig.data_classes is None
        assert list(adamig.data_structures) == ["ADSL", "BDS"]
        assert adamig.name == "SDTMIG v3.3"


class TestDataClassProduct:
    def test_sdtmig(self, payload):
        product = Product(href="/mdr/sdtmig/3-3")
        parse_product(product, payload("sdtmig-3-3.json"))

        assert list(product.data_classes) == ["SpecialPurpose", "Events"]
        special = product.data_classes["SpecialPurpose"]
        assert special.name == "Special-Purpose"
        assert special.ordinal == "1"
        dm = special.datasets["DM"]
        assert isinstance(dm, Dataset)
        assert dm.label == "Demographics"
        assert dm.description.startswith("A special-purpose domain")
        assert dm.get_name_list() == ["STUDYID", "USUBJID", "SEX"]
        assert dm.get_item("SEX").codelist == "C66731"
        assert set(product.get_current_item_groups()) == {"DM", "AE"}
        assert product.dependencies["model"].id == "sdtm-1-7"

    def test_codelist_as_single_link(self, payload):
        product = Product(href="/mdr/sdtmig/3-3")
        parse_product(product, payload("sdtmig-3-3.json"))
        aeser = product.data_classes["Events"].datasets["AE"].get_item("AESER")
        assert aeser.codelist == "C66742"

    def test_cdashig_domains_follow_parent_class(self, payload):
        """Test that product level domains are attached to their class only."""
        product = Product(href="/mdr/cdashig/2-0")
        parse_product(product, payload("cdashig-2-0.json"))

        events = product.data_classes["Events"]
        assert list(events.domains) == ["AE"]
        assert events.datasets is None
        assert "CM" not in product.get_current_item_groups()

        ae = events.domains["AE"]
        assert isinstance(ae, Domain)
        assert list(ae.scenarios) == ["AE.Solicited"]
        assert ae.scenarios["AE.Solicited"].scenario == "Solicited"
        assert ae.get_name_list() == ["STUDYID", "AESTDAT", "AEYN", "AETERM"]

    def test_cdash_field_attributes(self, payload):
        product = Product(href="/mdr/cdashig/2-0")
        parse_product(product, payload("cdashig-2-0.json"))

        field = product.data_classes["Events"].domains["AE"].get_item("AESTDAT")
        assert isinstance(field, Field)
        assert field.id == "AE.AESTDAT"
        assert field.question_text == "What is the start date of the adverse event?"
        assert field.mapping_instructions == "Maps to AESTDTC."
        assert field.sdtmig_dataset_mapping_targets_href == "/mdr/sdtmig/3-2/datasets/AE/variables/AESTDTC"
        assert field.type == "Data Collection Field"


class TestTerminology:
    def test_ct_package(self, payload):
        product = Product(href="/mdr/ct/packages/sdtmct-2019-12-20", type="Terminology")
        parse_product(product, payload("sdtmct-2019-12-20.json"))

        assert list(product.codelists) == ["C66731", "C66742"]
        sex = product.codelists["C66731"]
        assert sex.href == "/mdr/ct/packages/sdtmct-2019-12-20/codelists/C66731"
        assert sex.extensible is False
        assert sex.fully_loaded
        assert [term.submission_value for term in sex.terms] == ["F", "M", "U"]
        assert product.source.startswith("Provided by the National Cancer Institute")

    def test_code_list_without_terms_stays_partial(self):
        code_list = parse_code_list(CodeList(), {"conceptId": "C66731", "name": "Sex"})
        assert code_list.concept_id == "C66731"
        assert code_list.load_state is LoadState.PARTIAL

    def test_code_list_listing(self, payload):
        listing = parse_code_list_listing(payload("sdtmct-2019-12-20-codelists.json"), None)
        assert list(listing) == ["C66731", "C66742"]
        assert listing["C66731"].preferred_term == "CDISC SDTM Sex of Individual Terminology"
        assert listing["C66731"].terms == []

    def test_code_list_listing_without_links(self):
        assert parse_code_list_listing({"_links": {"self": {"href": "/x"}}}, None) is None


def test_item_group_listing(payload):
    listing = parse_item_group_listing(payload("sdtmig-3-3-datasets.json"), DatasetType.DATASETS)
    assert listing == {
        "DM": {"name": "DM", "label": "Demographics"},
        "AE": {"name": "AE", "label": "Adverse Events"},
    }
    structures = parse_item_group_listing(
        payload("adamig-1-1-datastructures.json"), DatasetType.DATA_STRUCTURES
    )
    assert list(structures) == ["ADSL", "BDS"]


class TestMerging:
    def test_absent_collection_is_kept(self):
        """Test that a payload without items keeps the resident items."""
        dataset = Dataset(name="DM", items={"DM.STUDYID": Variable(id="DM.STUDYID", name="STUDYID")})
        parse_item_group(dataset, {"name": "DM", "label": "Demographics"})

        assert dataset.label == "Demographics"
        assert list(dataset.items) == ["DM.STUDYID"]
        assert dataset.fully_loaded

    def test_present_collection_replaces(self, payload):
        dataset = Dataset(name="DM", items={"DM.OLD": Variable(id="DM.OLD", name="OLD")})
        parse_item_group(dataset, payload("sdtmig-3-3-datasets-DM.json"))
        assert "DM.OLD" not in dataset.items
        assert len(dataset.items) == 3

    def test_malformed_payload_leaves_node_unchanged(self):
        product = Product(href="/mdr/sdtmig/3-3", label="kept")
        assert parse_product(product, None) is False
        assert parse_product(product, ["unexpected"]) is False
        assert product.label == "kept"
        assert product.load_state is LoadState.PARTIAL


class TestMalformedParts:
    """A badly shaped piece of a document is dropped, the rest still loads."""

    def test_bad_variable_attribute(self, payload):
        raw = payload("sdtmig-3-3.json")
        raw["classes"][0]["datasets"][0]["datasetVariables"][0]["valueList"] = "M"

        product = Product(href="/mdr/sdtmig/3-3")
        assert parse_product(product, raw)

        assert product.fully_loaded
        assert set(product.get_current_item_groups()) == {"DM", "AE"}
        dm = product.data_classes["SpecialPurpose"].datasets["DM"]
        assert dm.get_name_list() == ["STUDYID", "USUBJID", "SEX"]
        assert dm.get_item("STUDYID").value_list is None

    def test_bad_list_element_is_skipped(self, payload):
        raw = payload("sdtmig-3-3.json")
        raw["classes"][0]["datasets"][0]["datasetVariables"].insert(1, "USUBJID")

        product = Product(href="/mdr/sdtmig/3-3")
        assert parse_product(product, raw)
        dm = product.data_classes["SpecialPurpose"].datasets["DM"]
        assert dm.get_name_list() == ["STUDYID", "USUBJID", "SEX"]

    def test_bad_collection_is_treated_as_absent(self):
        product = Product(href="/mdr/sdtmig/3-3")
        assert parse_product(product, {"label": "SDTMIG v3.3", "classes": "not a list"})
        assert product.label == "SDTMIG v3.3"
        assert product.data_classes == {}
        assert product.fully_loaded

    def test_bad_scalar_becomes_none(self):
        dataset = Dataset(name="DM")
        parse_item_group(dataset, {"name": "DM", "label": {"text": "Demographics"}, "ordinal": "5"})
        assert dataset.name == "DM"
        assert dataset.label is None


class TestParseInto:
    def test_dispatch(self, payload):
        data_structure = DataStructure(href="/mdr/adam/adamig-1-1/datastructures/ADSL")
        assert parse_into(data_structure, payload("adamig-1-1-datastructures-ADSL.json"))
        assert data_structure.label == "Subject-Level Analysis Dataset"

        code_list = CodeList(href="/mdr/ct/packages/sdtmct-2019-12-20/codelists/C66731")
        assert parse_into(code_list, payload("sdtmct-2019-12-20-C66731.json"))
        assert len(code_list.terms) == 3

    def test_unknown_node_type(self):
        with pytest.raises(TypeError):
            parse_into(ProductGroup(name="sdtmig"), {})


def test_validate_payload_passthrough_and_errors():
    model = ItemGroupPayload.model_validate({"name": "DM"})
    assert validate_payload(ItemGroupPayload, model) is model
    assert validate_payload(ItemGroupPayload, {"datasetVariables": "oops"}).dataset_variables is None
    assert validate_payload(ItemGroupPayload, "") is None
    assert validate_payload(ItemGroupPayload, {"ordinal": 3}).ordinal == "3"
