#!/usr/bin/env python3
"""
YouTube Catalogue Fetcher
Pulls a channel's public uploads from YouTube Data API v3 as video records,
ready for series detection (e.g. for competitor channels without an export)

Usage:
    python3 -m tools.youtube_fetch_channel_data "https://youtube.com/@channelname"
"""

import sys
import os
import re
from typing import Dict, List, Optional

from dotenv import load_dotenv
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from tools.series_models import VideoRecord
from tools.youtube_export_parser import classify_format, parse_publish_date, save_videos

# Load environment variables
load_dotenv()

BATCH_SIZE = 50
ISO_DURATION = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")


def parse_iso8601_duration(value: Optional[str]) -> int:
    """'PT1H2M3S' -> 3723. Unknown formats count as 0 seconds."""
    match = ISO_DURATION.match((value or "").strip())
    if not match:
        return 0
    days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def video_item_to_record(item: Dict) -> VideoRecord:
    """Convert one videos.list item into a VideoRecord."""
    snippet = item.get("snippet", {})
    statistics = item.get("statistics", {})
    duration_seconds = parse_iso8601_duration(item.get("contentDetails", {}).get("duration"))
    url = f"https://www.youtube.com/watch?v={item['id']}"

    return VideoRecord(
        external_id=item["id"],
        title=snippet.get("title", ""),
        published_at=parse_publish_date(snippet["publishedAt"]),
        channel=snippet.get("channelTitle", "") or "Main Channel",
        source_url=url,
        view_count=int(statistics.get("viewCount", 0)),
        like_count=int(statistics.get("likeCount", 0)),
        comment_count=int(statistics.get("commentCount", 0)),
        duration_seconds=duration_seconds,
        format=classify_format(None, url, duration_seconds),
    )


class YouTubeCatalogFetcher:
    def __init__(self, api_key, youtube=None):
        """Initialize YouTube API client"""
        self.youtube = youtube or build('youtube', 'v3', developerKey=api_key)
        self.quota_used = 0
        self.channel_info = None

    def extract_channel_id(self, url):
        """
        Extract channel ID from various YouTube URL formats

        Supported formats:
        - https://youtube.com/@username
        - https://youtube.com/channel/UCxxxxxxxx
        - https://youtube.com/c/channelname
        - https://youtube.com/user/username
        """
        url = url.strip().rstrip('/')

        match = re.search(r'youtube\.com/@([\w.-]+)', url)
        if match:
            return self.get_channel_id_from_username(match.group(1))

        match = re.search(r'youtube\.com/channel/(UC[\w-]+)', url)
        if match:
            return match.group(1)

        match = re.search(r'youtube\.com/c/([\w-]+)', url)
        if match:
            return self.get_channel_id_from_custom_url(match.group(1))

        match = re.search(r'youtube\.com/user/([\w-]+)', url)
        if match:
            return self.get_channel_id_from_username(match.group(1))

        raise ValueError(
            f"Invalid YouTube channel URL format: {url}\n"
            "Supported formats:\n"
            "  - https://youtube.com/@username\n"
            "  - https://youtube.com/channel/UCxxxxxxxx\n"
            "  - https://youtube.com/c/channelname\n"
            "  - https://youtube.com/user/username"
        )

    def get_channel_id_from_username(self, username):
        """Resolve a handle, falling back to the legacy username lookup"""
        username = username.lstrip('@')
        try:
            for lookup in ({'forHandle': username}, {'forUsername': username}):
                response = self.youtube.channels().list(part='id', **lookup).execute()
                self.quota_used += 1
                if response.get('items'):
                    return response['items'][0]['id']

            raise ValueError(f"Channel not found: {username}")

        except HttpError as e:
            if e.resp.status == 404:
                raise ValueError(f"Channel not found: {username}")
            raise

    def get_channel_id_from_custom_url(self, custom_url):
        """Get channel ID from custom URL (/c/channelname)"""
        try:
            response = self.youtube.search().list(
                part='snippet',
                q=custom_url,
                type='channel',
                maxResults=1
            ).execute()
            self.quota_used += 100  # Search is expensive

            if response.get('items'):
                return response['items'][0]['snippet']['channelId']

            raise ValueError(f"Channel not found with custom URL: {custom_url}")

        except HttpError as e:
            if e.resp.status == 404:
                raise ValueError(f"Channel not found: {custom_url}")
            raise

    def fetch_channel_info(self, channel_id):
        """Fetch channel title and uploads playlist"""
        try:
            response = self.youtube.channels().list(
                part='snippet,contentDetails',
                id=channel_id
            ).execute()
            self.quota_used += 1

            if not response.get('items'):
                raise ValueError(f"Channel not found: {channel_id}")

            channel = response['items'][0]
            return {
                'id': channel['id'],
                'title': channel['snippet']['title'],
                'uploadsPlaylistId': channel['contentDetails']['relatedPlaylists'].get('uploads', ''),
            }

        except HttpError as e:
            if e.resp.status == 403:
                raise Exception("YouTube API quota exceeded. Wait until midnight PT or use a different API key.")
            elif e.resp.status == 404:
                raise ValueError(f"Channel not found: {channel_id}")
            else:
                raise Exception(f"YouTube API error: {e}")

    def fetch_upload_ids(self, uploads_playlist_id, max_videos=0) -> List[str]:
        """Page through the uploads playlist, newest first."""
        video_ids: List[str] = []
        next_page_token = None

        while True:
            response = self.youtube.playlistItems().list(
                part='contentDetails',
                playlistId=uploads_playlist_id,
                maxResults=BATCH_SIZE,
                pageToken=next_page_token
            ).execute()
            self.quota_used += 1

            video_ids.extend(item['contentDetails']['videoId'] for item in response.get('items', []))
            if max_videos > 0 and len(video_ids) >= max_videos:
                return video_ids[:max_videos]

            next_page_token = response.get('nextPageToken')
            if not next_page_token:
                return video_ids

    def fetch_video_records(self, video_ids: List[str]) -> List[VideoRecord]:
        """Fetch full details in batches of at most 50 ids per request"""
        records: List[VideoRecord] = []
        for i in range(0, len(video_ids), BATCH_SIZE):
            batch_ids = video_ids[i:i + BATCH_SIZE]
            response = self.youtube.videos().list(
                part='snippet,statistics,contentDetails',
                id=','.join(batch_ids)
            ).execute()
            self.quota_used += 1

            for item in response.get('items', []):
                snippet = item.get('snippet', {})
                # Private and deleted uploads come back without a date or title
                if snippet.get('publishedAt') and (snippet.get('title') or '').strip():
                    records.append(video_item_to_record(item))
        return records

    def fetch_catalog(self, channel_url, max_videos=0) -> List[VideoRecord]:
        """Resolve a channel URL and return its uploads as VideoRecords."""
        channel_id = self.extract_channel_id(channel_url)
        channel_info = self.fetch_channel_info(channel_id)
        self.channel_info = channel_info
        if not channel_info['uploadsPlaylistId']:
            raise Exception("Could not find uploads playlist for this channel")

        try:
            video_ids = self.fetch_upload_ids(channel_info['uploadsPlaylistId'], max_videos)
            print(f"   Found {len(video_ids)} videos")
            return self.fetch_video_records(video_ids)
        except HttpError as e:
            if e.resp.status == 403:
                raise Exception("YouTube API quota exceeded. Wait until midnight PT or use a different API key.")
            raise Exception(f"YouTube API error: {e}")


def main():
    """Main execution function"""
    if len(sys.argv) != 2:
        print("❌ Error: Missing channel URL")
        print("\nUsage:")
        print("  python3 -m tools.youtube_fetch_channel_data \"CHANNEL_URL\"")
        print("\nExample:")
        print("  python3 -m tools.youtube_fetch_channel_data \"https://youtube.com/@mkbhd\"")
        sys.exit(1)

    channel_url = sys.argv[1]

    api_key = os.getenv('YOUTUBE_API_KEY')
    max_videos = int(os.getenv('MAX_VIDEOS', 0))
    output_folder = os.getenv('OUTPUT_FOLDER', '.tmp/series_audits')

    if not api_key:
        print("❌ Error: YOUTUBE_API_KEY not found in .env file")
        sys.exit(1)

    try:
        print("🚀 YouTube Catalogue Fetcher")
        print("=" * 50)
        print(f"Channel URL: {channel_url}")
        print(f"Max videos: {max_videos if max_videos > 0 else 'ALL'}")
        print()

        fetcher = YouTubeCatalogFetcher(api_key)
        print("📹 Fetching uploads...")
        videos = fetcher.fetch_catalog(channel_url, max_videos)
        if not videos:
            raise Exception("No videos found in channel")

        output_file = save_videos(videos, f"{output_folder}/{fetcher.channel_info['id']}")

        print("=" * 50)
        print("✅ SUCCESS!")
        print(f"📁 Videos saved to: {output_file}")
        print(f"📊 Videos fetched: {len(videos)}")
        print(f"💰 API quota used: ~{fetcher.quota_used} units")
        print()
        print("Next step:")
        print(f"  python3 -m tools.series_detection {output_file}")

    except ValueError as e:
        print(f"❌ Validation Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
