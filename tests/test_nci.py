"""Tests for terminology read from the NCI EVS site."""

import httpx
import pytest

from cdisc_library_client import CdiscLibrary
from cdisc_library_client.models import DatasetType, LoadState, Product
from cdisc_library_client.nci import parse_directory_listing, parse_odm_package

SDTM_FOLDER = """
<html><body><h1>Index of /ftp1/CDISC/SDTM/Archive</h1>
<a href="SDTM%20Terminology%202019-09-27.odm.xml">SDTM Terminology 2019-09-27.odm.xml</a>
<a href="SDTM%20Terminology%202019-12-20.odm.xml">SDTM Terminology 2019-12-20.odm.xml</a>
<a href="SDTM%20Terminology%202019-12-20.xls">SDTM Terminology 2019-12-20.xls</a>
</body></html>
"""

GLOSSARY_FOLDER = """
<a href="CDISC%20Glossary%20Terminology%202019-12-20.odm.xml">CDISC Glossary Terminology 2019-12-20.odm.xml</a>
"""

SDTM_ODM = """
<ODM xmlns="http://www.cdisc.org/ns/odm/v1.3"
     xmlns:nciodm="http://ncicb.nci.nih.gov/xml/odm/EVS/CDISC"
     FileOID="CDISC_CT.SDTM.2019-12-20"
     Originator="CDISC XML Technologies Team"
     SourceSystem="NCI Thesaurus"
     SourceSystemVersion="2019-12-20">
  <Study OID="CDISC_CT.SDTM.2019-12-20">
    <GlobalVariables>
      <StudyName>CDISC SDTM Controlled Terminology</StudyName>
      <StudyDescription>CDISC SDTM Controlled Terminology, 2019-12-20</StudyDescription>
      <ProtocolName>CDISC SDTM Controlled Terminology</ProtocolName>
    </GlobalVariables>
    <MetaDataVersion OID="CDISC_CT_MetaDataVersion.SDTM.2019-12-20" Name="CDISC SDTM Controlled Terminology">
      <CodeList OID="CL.C66731.SEX" Name="Sex" DataType="text"
                nciodm:ExtCodeID="C66731" nciodm:CodeListExtensible="No">
        <Description>
          <TranslatedText xml:lang="en">A collection of terms describing the sex of an individual.</TranslatedText>
        </Description>
        <EnumeratedItem CodedValue="F" nciodm:ExtCodeID="C16576">
          <nciodm:CDISCSynonym>Female</nciodm:CDISCSynonym>
          <nciodm:CDISCDefinition>A person who belongs to the sex that normally produces ova.</nciodm:CDISCDefinition>
          <nciodm:PreferredTerm>Female</nciodm:PreferredTerm>
        </EnumeratedItem>
        <EnumeratedItem CodedValue="M" nciodm:ExtCodeID="C20197">
          <nciodm:CDISCSynonym>Male</nciodm:CDISCSynonym>
          <nciodm:CDISCDefinition>A person who belongs to the sex that normally produces sperm.</nciodm:CDISCDefinition>
          <nciodm:PreferredTerm>Male</nciodm:PreferredTerm>
        </EnumeratedItem>
        <nciodm:CDISCSubmissionValue>SEX</nciodm:CDISCSubmissionValue>
        <nciodm:CDISCSynonym>Sex</nciodm:CDISCSynonym>
        <nciodm:PreferredTerm>CDISC SDTM Sex of Individual Terminology</nciodm:PreferredTerm>
      </CodeList>
      <CodeList OID="CL.C66742.NY" Name="No Yes Response" DataType="text"
                nciodm:ExtCodeID="C66742" nciodm:CodeListExtensible="Yes">
        <EnumeratedItem CodedValue="N" nciodm:ExtCodeID="C49487">
          <nciodm:PreferredTerm>No</nciodm:PreferredTerm>
        </EnumeratedItem>
        <nciodm:CDISCSubmissionValue>NY</nciodm:CDISCSubmissionValue>
      </CodeList>
    </MetaDataVersion>
  </Study>
</ODM>
"""


class TestDirectoryListing:
    def test_odm_files_become_products(self):
        products = parse_directory_listing(SDTM_FOLDER, "/SDTM/Archive/")

        assert list(products) == ["sdtmct-2019-09-27", "sdtmct-2019-12-20"]
        product = products["sdtmct-2019-12-20"]
        assert product.href == "/mdr/ct/packages/sdtmct-2019-12-20"
        assert product.label == "SDTM Controlled Terminology Effective 2019-12-20"
        assert product.type == "Terminology"
        assert product.model == "SDTM"
        assert product.version == "2019-12-20"
        assert product.dataset_type is DatasetType.CODELISTS

    def test_glossary_id(self):
        products = parse_directory_listing(GLOSSARY_FOLDER, "/Glossary/Archive/")
        assert list(products) == ["glossaryct-2019-12-20"]
        assert products["glossaryct-2019-12-20"].model == "Glossary"

    def test_non_html(self):
        assert parse_directory_listing({}, "/SDTM/Archive/") == {}


class TestOdmPackage:
    @pytest.fixture
    def product(self):
        return parse_directory_listing(SDTM_FOLDER, "/SDTM/Archive/")["sdtmct-2019-12-20"]

    def test_parse(self, product):
        assert parse_odm_package(product, SDTM_ODM)

        assert product.fully_loaded
        assert product.name == "SDTM CT 2019-12-20"
        assert product.source == "CDISC XML Technologies Team"
        assert product.effective_date == "2019-12-20"
        assert product.registration_status == "Final"
        assert product.description == "CDISC SDTM Controlled Terminology, 2019-12-20"
        assert list(product.codelists) == ["C66731", "C66742"]

    def test_code_list_content(self, product):
        parse_odm_package(product, SDTM_ODM)
        sex = product.codelists["C66731"]

        assert sex.name == "Sex"
        assert sex.extensible is False
        assert sex.submission_value == "SEX"
        assert sex.synonyms == ["Sex"]
        assert sex.definition == "A collection of terms describing the sex of an individual."
        assert sex.preferred_term == "CDISC SDTM Sex of Individual Terminology"
        assert sex.href == "/mdr/ct/packages/sdtmct-2019-12-20/codelists/C66731"
        assert sex.fully_loaded
        assert [(term.concept_id, term.submission_value) for term in sex.terms] == [
            ("C16576", "F"),
            ("C20197", "M"),
        ]
        assert sex.terms[1].definition == "A person who belongs to the sex that normally produces sperm."

        ny = product.codelists["C66742"]
        assert ny.extensible is True
        assert ny.definition is None
        assert ny.terms[0].synonyms is None

    @pytest.mark.parametrize("document", ["", "<ODM", "<ODM><Study/></ODM>", {"a": 1}])
    def test_unusable_documents(self, product, document):
        assert parse_odm_package(product, document) is False
        assert product.load_state is LoadState.PARTIAL


def nci_handler(library_api):
    """Serve NCI pages and delegate everything else to the fake library."""

    def handler(request):
        if request.url.host != "evs.nci.nih.gov":
            return library_api.handler(request)
        library_api.requests.append(request)
        path = request.url.path
        if path.endswith("/SDTM/Archive/"):
            return httpx.Response(200, text=SDTM_FOLDER, headers={"content-type": "text/html"})
        if path.endswith("/Glossary/Archive/"):
            return httpx.Response(200, text=GLOSSARY_FOLDER, headers={"content-type": "text/html"})
        if path.endswith("SDTM Terminology 2019-12-20.odm.xml"):
            return httpx.Response(200, text=SDTM_ODM, headers={"content-type": "text/xml"})
        return httpx.Response(404, text="Not Found", headers={"content-type": "text/html"})

    return handler


@pytest.fixture
def nci_library(library_api):
    return CdiscLibrary(
        api_key="test-key",
        use_nci_site_for_ct=True,
        transport=httpx.MockTransport(nci_handler(library_api)),
    )


class TestNciSiteLibrary:
    @pytest.mark.asyncio
    async def test_catalog_from_folders(self, nci_library, library_api):
        products = await nci_library.get_ct_from_nci_site(["/SDTM/Archive/", "Glossary/Archive/"])

        assert set(products) == {"sdtmct-2019-09-27", "sdtmct-2019-12-20", "glossaryct-2019-12-20"}
        assert await nci_library.get_product_list() == list(products)
        assert {str(request.url) for request in library_api.requests} == {
            "https://evs.nci.nih.gov/ftp1/CDISC/SDTM/Archive/",
            "https://evs.nci.nih.gov/ftp1/CDISC/Glossary/Archive/",
        }

    @pytest.mark.asyncio
    async def test_existing_catalog_is_kept(self, nci_library):
        await nci_library.get_product_classes()
        await nci_library.get_ct_from_nci_site(["/SDTM/Archive/"])

        classes = await nci_library.get_product_classes()
        assert "data-tabulation" in classes
        assert list(classes["terminology"].product_groups["packages"].products) == [
            "sdtmct-2019-09-27",
            "sdtmct-2019-12-20",
        ]

    @pytest.mark.asyncio
    async def test_package_loaded_from_odm(self, nci_library):
        await nci_library.get_ct_from_nci_site(["/SDTM/Archive/"])

        product = await nci_library.get_product("sdtmct-2019-12-20")
        assert product.fully_loaded
        sex = await product.get_code_list("C66731")
        assert [term.submission_value for term in sex.terms] == ["F", "M"]

    @pytest.mark.asyncio
    async def test_reading_folders_again_keeps_loaded_packages(self, nci_library, library_api):
        await nci_library.get_ct_from_nci_site(["/SDTM/Archive/"])
        product = await nci_library.get_product("sdtmct-2019-12-20")
        assert product.fully_loaded

        products = await nci_library.get_ct_from_nci_site(["/SDTM/Archive/"])

        assert products["sdtmct-2019-12-20"] is product
        assert product.fully_loaded
        assert list(products) == ["sdtmct-2019-09-27", "sdtmct-2019-12-20"]
        again = await nci_library.get_product("sdtmct-2019-12-20")
        assert again is product
        assert sum(path.endswith(".odm.xml") for path in library_api.paths) == 1

    @pytest.mark.asyncio
    async def test_missing_odm_file(self, nci_library):
        await nci_library.get_ct_from_nci_site(["/SDTM/Archive/"])
        product = await nci_library.get_product("sdtmct-2019-09-27")
        assert not product.fully_loaded
        assert product.codelists == {}


def test_odm_without_metadata_version():
    product = Product(id="x")
    assert parse_odm_package(product, "<ODM/>") is False
