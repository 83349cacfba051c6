import pytest
from lxml import etree

import cisco_xml


BOOTSTRAP = b"""<?xml version="1.0" encoding="UTF-8"?>
<device xsi:type="axl:XIPPhone" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <fullConfig>true</fullConfig>
  <deviceProtocol>SIP</deviceProtocol>
  <directoryURL>http://10.1.1.1:8080/ccmcip/xmldirectory.jsp</directoryURL>
  <idleTimeout>0</idleTimeout>
</device>"""

MENU = b"""<CiscoIPPhoneMenu>
  <Title>Directories</Title>
  <MenuItem><Name>Missed Calls</Name><URL>Application:Cisco/MissedCalls</URL></MenuItem>
  <MenuItem><Name>Corporate Directory</Name><URL>http://cm/ccmcip/xmldirectoryinput.jsp</URL></MenuItem>
  <MenuItem><Name>Personal Directory</Name></MenuItem>
</CiscoIPPhoneMenu>"""

PAGE = b"""<CiscoIPPhoneDirectory>
  <Title>Corporate Directory</Title>
  <DirectoryEntry><Name>Doe, Jane</Name><Telephone>4001</Telephone></DirectoryEntry>
  <DirectoryEntry><Name>  Roe, Rick </Name></DirectoryEntry>
  <SoftKeyItem><Name>Dial</Name><URL>SoftKey:Dial</URL><Position>1</Position></SoftKeyItem>
  <SoftKeyItem><Name>Next</Name><URL>http://cm/ccmcip/xmldirectorylist.jsp?start=33</URL></SoftKeyItem>
  <SoftKeyItem><Name>Next</Name><URL>http://cm/other</URL></SoftKeyItem>
</CiscoIPPhoneDirectory>"""


def test_decode_bootstrap():
    pointer = cisco_xml.decode_bootstrap(BOOTSTRAP)
    assert pointer.directory_url == "http://10.1.1.1:8080/ccmcip/xmldirectory.jsp"


def test_decode_bootstrap_without_directory_url():
    assert cisco_xml.decode_bootstrap(b"<device><idleTimeout>0</idleTimeout></device>") == (
        cisco_xml.BootstrapPointer()
    )


def test_decode_menu_keeps_document_order():
    menu = cisco_xml.decode_menu(MENU)
    assert [item.name for item in menu.items] == [
        "Missed Calls",
        "Corporate Directory",
        "Personal Directory",
    ]
    assert menu.items[2].url is None
    assert menu.find("Corporate Directory").url == "http://cm/ccmcip/xmldirectoryinput.jsp"
    assert menu.find("corporate directory") is None


def test_decode_list_pointer():
    doc = b"<CiscoIPPhoneInput><Title>Search</Title><URL> http://cm/list </URL></CiscoIPPhoneInput>"
    assert cisco_xml.decode_list_pointer(doc).url == "http://cm/list"
    assert cisco_xml.decode_list_pointer(b"<CiscoIPPhoneInput/>").url is None


def test_entries_and_soft_keys_are_separate_projections():
    entries = cisco_xml.decode_entries(PAGE)
    assert entries == [
        cisco_xml.DirectoryEntry(name="Doe, Jane", telephone="4001"),
        cisco_xml.DirectoryEntry(name="Roe, Rick", telephone=None),
    ]
    keys = cisco_xml.decode_soft_keys(PAGE)
    assert [k.name for k in keys] == ["Dial", "Next", "Next"]


def test_next_page_url_uses_first_next():
    keys = cisco_xml.decode_soft_keys(PAGE)
    assert cisco_xml.next_page_url(keys) == "http://cm/ccmcip/xmldirectorylist.jsp?start=33"
    assert cisco_xml.next_page_url(keys[:1]) is None
    assert cisco_xml.next_page_url([]) is None


def test_unrelated_document_decodes_empty():
    assert cisco_xml.decode_entries(MENU) == []
    assert cisco_xml.decode_menu(PAGE).items == []


def test_malformed_xml_raises():
    with pytest.raises(etree.XMLSyntaxError):
        cisco_xml.decode_menu(b"<CiscoIPPhoneMenu><MenuItem>")
