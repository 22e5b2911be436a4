from rest_framework import serializers
from .models import ContentRecord, Episode, Season


class EpisodeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Episode
        fields = [
            "episode_number",
            "title",
            "description",
            "duration",
            "rental_price",
            "status",
            "progress",
            "hls_url",
            "thumbnail_url",
            "error_details",
        ]


class SeasonSerializer(serializers.ModelSerializer):
    episodes = EpisodeSerializer(many=True, read_only=True)

    class Meta:
        model = Season
        fields = ["season_number", "title", "description", "rental_price", "episodes"]


class ContentRecordSerializer(serializers.ModelSerializer):
    """What the catalog layer reads; the pipeline is the only writer."""
    seasons = SeasonSerializer(many=True, read_only=True)

    class Meta:
        model = ContentRecord
        fields = [
            "id",
            "bundle_name",
            "title",
            "category",
            "description",
            "content_type",
            "rental_price",
            "status",
            "progress",
            "hls_url",
            "thumbnail_url",
            "trailer_url",
            "error_details",
            "seasons",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
