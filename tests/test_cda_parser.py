import threading

import pytest

from health_digest.errors import IngestionCancelled
from health_digest.etl.cda_parser import count_observations

CDA_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<ClinicalDocument xmlns="urn:hl7-org:v3" xmlns:sdtc="urn:hl7-org:sdtc"
                  xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <title>Health Export</title>
  <component>
    <structuredBody>
      <component>
        <section>
          <title>Vital Signs</title>
          <entry>
            <organizer classCode="CLUSTER" moodCode="EVN">
              <component>
                <observation classCode="OBS" moodCode="EVN">
                  <code code="8867-4" displayName="Heart rate"/>
                  <value xsi:type="PQ" value="72" unit="/min"/>
                  <referenceRange>
                    <observationRange><text>60-100</text></observationRange>
                  </referenceRange>
                </observation>
              </component>
              <component>
                <observation classCode="OBS" moodCode="EVN">
                  <code code="29463-7" displayName="Body weight"/>
                  <value xsi:type="PQ" value="70.5" unit="kg"/>
                </observation>
              </component>
            </organizer>
          </entry>
        </section>
      </component>
      <component>
        <section>
          <title>Results</title>
          <entry>
            <sdtc:observation classCode="OBS" moodCode="EVN"/>
          </entry>
        </section>
      </component>
    </structuredBody>
  </component>
</ClinicalDocument>
"""


def test_counts_observations_not_ranges():
    assert count_observations(CDA_DOC) == 3


def test_no_observations():
    assert count_observations("<ClinicalDocument><title>empty</title></ClinicalDocument>") == 0
    assert count_observations("") == 0


@pytest.mark.parametrize("window_size", [1, 5, 13, 64, 10 ** 6])
def test_window_size_does_not_change_count(window_size):
    assert count_observations(CDA_DOC, window_size=window_size) == 3
    assert count_observations(CDA_DOC.encode("utf-8"), window_size=window_size) == 3


def test_tag_split_across_windows():
    start = CDA_DOC.index("<observation")
    for offset in range(start, start + len("<observation") + 2):
        assert count_observations(CDA_DOC, window_size=offset) == 3, offset


def test_cancel_stops_count():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(IngestionCancelled):
        count_observations(CDA_DOC, window_size=64, cancel=cancel)
