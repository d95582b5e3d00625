import csv
import json
import sys

import pytest

from torchsubst.torchsubst import main


def configuration(stats_file, **kwargs):
    statistics = {
        'id': 'stats',
        'type': 'FeatureStatistics',
        'jump_process': 'jp',
        'site_pattern': 'patterns',
        'features': {
            'id': 'features',
            'type': 'Features',
            'features': [
                {'start': 1, 'end': 4, 'name': 'first'},
                {'start': 5, 'end': 8, 'name': 'second'},
            ],
        },
        'file_name': str(stats_file),
    }
    statistics.update(kwargs)
    return [
        {'id': 'taxa', 'type': 'Taxa', 'taxa': ['A', 'B', 'C']},
        {
            'id': 'tree',
            'type': 'BranchLengthTreeModel',
            'taxa': 'taxa',
            'newick': '((A:0.1,B:0.2):0.05,C:0.3);',
            'reroot': 'C',
        },
        {
            'id': 'alignment',
            'type': 'Alignment',
            'taxa': 'taxa',
            '_comment': 'sequences are matched to taxa by name',
            'sequences': [
                {'taxon': 'A', 'sequence': 'ACGTACGT'},
                {'taxon': 'B', 'sequence': 'ACGTACGA'},
                {'taxon': 'C', 'sequence': 'ACGAAC-T'},
            ],
        },
        {'id': 'patterns', 'type': 'SitePattern', 'alignment': 'alignment'},
        {
            'id': 'hky',
            'type': 'HKY',
            'kappa': {'id': 'kappa', 'type': 'Parameter', 'tensor': [3.0]},
            'frequencies': {
                'id': 'freqs',
                'type': 'Parameter',
                'full': [4],
                'value': 0.25,
            },
        },
        {
            'id': 'jp',
            'type': 'JumpProcess',
            'substitution_model': 'hky',
            'tree_model': 'tree',
        },
        statistics,
    ]


def run(tmp_path, monkeypatch, config):
    config_file = tmp_path / 'config.json'
    config_file.write_text(json.dumps(config))
    monkeypatch.setattr(sys, 'argv', ['torchsubst', str(config_file)])
    main()


@pytest.mark.parametrize("joint", [False, True])
def test_feature_statistics(tmp_path, monkeypatch, joint):
    stats_file = tmp_path / 'stats.csv'
    timing_file = tmp_path / 'timing.txt'
    run(
        tmp_path,
        monkeypatch,
        configuration(stats_file, joint=joint, ci=0.95, timing_file=str(timing_file)),
    )
    with open(stats_file) as fp:
        rows = list(csv.DictReader(fp))
    assert [row['name'] for row in rows] == ['first', 'second']
    if joint:
        assert 'cond_p_approx' in rows[0]
        assert 'len = 4' in timing_file.read_text()
    else:
        assert 0.0 <= float(rows[0]['p_cons']) <= 1.0
        assert float(rows[0]['prior_mean']) > 0.0


def test_substitution_distribution(tmp_path, monkeypatch):
    stats_file = tmp_path / 'stats.csv'
    distrib_file = tmp_path / 'distrib.csv'
    config = configuration(stats_file)
    config[-1] = {
        'id': 'distribution',
        'type': 'SubstitutionDistribution',
        'jump_process': 'jp',
        'site_pattern': 'patterns',
        'file_name': str(distrib_file),
    }
    run(tmp_path, monkeypatch, config)
    with open(distrib_file) as fp:
        rows = list(csv.DictReader(fp))
    assert rows[0]['n'] == '0'
    assert sum(float(row['p']) for row in rows) == pytest.approx(1.0)


def test_dry_run(tmp_path, monkeypatch):
    stats_file = tmp_path / 'stats.csv'
    config_file = tmp_path / 'config.json'
    config_file.write_text(json.dumps(configuration(stats_file)))
    monkeypatch.setattr(sys, 'argv', ['torchsubst', '--dry', str(config_file)])
    main()
    assert not stats_file.exists()
